"""JSON log lines for sync passes.

Each line is one object with ``timestamp``, ``level``, ``logger`` and
``message``. Records logged by the engine, the orphan scanner and the
Graph client may also carry these ``extra=`` keys, copied when set:

``run_id``         identifies one upsert pass; every line of the pass shares it
``principal_name`` the userPrincipalName the line is about
``action``         the ``SyncAction`` value taken, or ``change`` per drifted field
``fields``         names of the ``ChangedField`` values that drifted
``account_id``     Graph object id of the account that was touched
``records``        number of records processed, on the end-of-pass line
``duration_s``     wall time of the pass
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

STRUCTURED_KEYS = (
    "run_id",
    "principal_name",
    "action",
    "fields",
    "account_id",
    "records",
    "duration_s",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        for key in STRUCTURED_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO") -> None:
    """Send ``directory_sync.*`` loggers to stderr as JSON.

    Only the package logger is configured, so library loggers such as
    ``apscheduler`` and ``urllib3`` keep whatever the host sets up.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger("directory_sync")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False

"""AWS Lambda handler for the directory sync.

Deployed as a Lambda function triggered by an EventBridge rule.
Each invocation runs one pass.

Event format:
  {"mode": "sync"}       upsert pass followed by the orphan scan
  {"mode": "upsert"}     upsert pass only
  {"mode": "orphans"}    orphan scan only
"""

from __future__ import annotations

import json
import logging
import os
import sys

# Ensure the project root is on sys.path for Lambda packaging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from scripts.directory_sync.cli import bootstrap, run_pass
from scripts.directory_sync.logging_config import configure_logging

logger = logging.getLogger("directory_sync.lambda")

MODES = {
    "sync": (True, True),
    "upsert": (True, False),
    "orphans": (False, True),
}


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    mode = (event or {}).get("mode", "sync")
    if mode not in MODES:
        return {"statusCode": 400, "body": f"Unknown mode {mode!r}"}

    logger.info("Lambda invoked for mode=%s", mode)

    boot = bootstrap(selection=(event or {}).get("selection"))
    if not boot.ok:
        logger.error("Startup failed: %s", boot.error)
        return {
            "statusCode": 500,
            "body": json.dumps({"mode": mode, "error": boot.error}),
        }

    upsert, orphan_scan = MODES[mode]
    try:
        sync_report, orphan_report = run_pass(boot, upsert=upsert, orphan_scan=orphan_scan)
        body: dict = {"mode": mode}
        if sync_report is not None:
            body["results"] = sync_report.summary()
        if orphan_report is not None:
            body["orphans"] = {
                "count": orphan_report.count,
                "complete": orphan_report.complete,
                "principal_names": orphan_report.orphans,
            }
        logger.info("Run complete for mode=%s", mode)
        return {"statusCode": 200, "body": json.dumps(body)}
    except Exception as exc:
        logger.error("Run failed for mode=%s: %s", mode, exc, exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({"mode": mode, "error": str(exc)}),
        }
    finally:
        boot.close()

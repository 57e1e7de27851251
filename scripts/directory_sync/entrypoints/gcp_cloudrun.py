"""GCP Cloud Run Job entry point for the directory sync.

Deployed as a Cloud Run Job triggered by Cloud Scheduler.
The SYNC_MODE env var selects what the job runs.

Usage:
  SYNC_MODE=sync python -m scripts.directory_sync.entrypoints.gcp_cloudrun
  SYNC_MODE=orphans python -m scripts.directory_sync.entrypoints.gcp_cloudrun
"""

from __future__ import annotations

import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from scripts.directory_sync.cli import bootstrap, run_pass
from scripts.directory_sync.logging_config import configure_logging

logger = logging.getLogger("directory_sync.cloudrun")


def main() -> None:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    mode = os.environ.get("SYNC_MODE", "sync")
    if mode not in ("sync", "upsert", "orphans"):
        logger.error("SYNC_MODE must be one of sync, upsert, orphans; got %r", mode)
        sys.exit(1)

    logger.info("Cloud Run Job started for mode=%s", mode)

    boot = bootstrap()
    if not boot.ok:
        logger.error("Startup failed: %s", boot.error)
        sys.exit(1)

    try:
        sync_report, orphan_report = run_pass(
            boot,
            upsert=mode in ("sync", "upsert"),
            orphan_scan=mode in ("sync", "orphans"),
        )
        if sync_report is not None:
            logger.info("Sync results: %s", sync_report.summary())
        if orphan_report is not None:
            logger.info("Orphan scan found %d orphan(s)", orphan_report.count)
    except Exception as exc:
        logger.error("Run failed for mode=%s: %s", mode, exc, exc_info=True)
        sys.exit(1)
    finally:
        boot.close()


if __name__ == "__main__":
    main()

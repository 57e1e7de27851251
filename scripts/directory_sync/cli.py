"""CLI entry point: sync, orphans, scheduler."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Optional

from scripts.directory_sync.config import ConfigError, DirectorySyncConfig, load_config
from scripts.directory_sync.directory import DirectoryError, GraphDirectoryClient
from scripts.directory_sync.engine import ReconciliationEngine
from scripts.directory_sync.logging_config import configure_logging
from scripts.directory_sync.models import SyncReport
from scripts.directory_sync.orphans import OrphanReport, OrphanScanner, load_keep_list
from scripts.directory_sync.secrets import SecretResolutionError
from scripts.directory_sync.source import MongoSourceRepository, SourceError

logger = logging.getLogger("directory_sync.cli")

SELECTION_CHOICES = ["eligible", "emails"]


@dataclass
class Bootstrap:
    """Wired components for one run, or the reason they could not be built."""

    config: Optional[DirectorySyncConfig] = None
    source: Optional[MongoSourceRepository] = None
    directory: Optional[GraphDirectoryClient] = None
    keep_list: frozenset[str] = field(default_factory=frozenset)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def engine(self) -> ReconciliationEngine:
        return ReconciliationEngine(self.config.sync, self.source, self.directory)

    def scanner(self) -> OrphanScanner:
        return OrphanScanner(self.config.sync, self.directory, self.source)

    def close(self) -> None:
        if self.directory is not None:
            self.directory.close()
        if self.source is not None:
            self.source.close()


def bootstrap(
    config: Optional[DirectorySyncConfig] = None,
    selection: Optional[str] = None,
) -> Bootstrap:
    """Load config, connect to MongoDB and authenticate against Graph.

    Never raises for expected startup failures; the caller decides to abort.
    """
    boot = Bootstrap()
    try:
        boot.config = config or load_config()
        sync = boot.config.sync
        boot.keep_list = load_keep_list(sync.keep_list, sync.keep_list_file)

        boot.source = MongoSourceRepository(boot.config.mongo, sync, selection=selection)
        boot.source.ping()

        boot.directory = GraphDirectoryClient(
            boot.config.graph, affiliation_attribute=sync.affiliation_attribute
        )
        boot.directory.authenticate()
    except (ConfigError, SecretResolutionError, SourceError, DirectoryError) as exc:
        boot.close()
        boot.error = f"{type(exc).__name__}: {exc}"
    return boot


def run_pass(
    boot: Bootstrap, upsert: bool = True, orphan_scan: bool = True
) -> tuple[Optional[SyncReport], Optional[OrphanReport]]:
    """Run the upsert loop, then the orphan scan, against a bootstrapped run."""
    sync_report = None
    orphan_report = None
    if upsert:
        sync_report = boot.engine().run()
    if orphan_scan:
        orphan_report = boot.scanner().scan_and_write(boot.keep_list)
    return sync_report, orphan_report


def _bootstrap_or_exit(selection: Optional[str] = None) -> Bootstrap:
    boot = bootstrap(selection=selection)
    if not boot.ok:
        logger.error("Startup failed: %s", boot.error)
        sys.exit(1)
    return boot


def cmd_sync(args: argparse.Namespace) -> None:
    """Run one upsert pass followed by the orphan scan."""
    boot = _bootstrap_or_exit(args.selection)
    try:
        sync_report, orphan_report = run_pass(boot, orphan_scan=not args.no_orphan_scan)
        logger.info("Sync results: %s", sync_report.summary())
        if orphan_report is not None:
            logger.info(
                "Orphan scan: %d orphan(s), %d account(s) scanned, complete=%s",
                orphan_report.count, orphan_report.accounts_scanned, orphan_report.complete,
            )
    finally:
        boot.close()


def cmd_orphans(args: argparse.Namespace) -> None:
    """Run the orphan scan only."""
    boot = _bootstrap_or_exit(args.selection)
    try:
        _, report = run_pass(boot, upsert=False)
        for name in report.orphans:
            print(name)
    finally:
        boot.close()


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from scripts.directory_sync.scheduler import start_scheduler

    try:
        config = load_config()
    except (ConfigError, SecretResolutionError) as exc:
        logger.error("Startup failed: %s", exc)
        sys.exit(1)
    start_scheduler(config, selection=args.selection)


def main() -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    parser = argparse.ArgumentParser(
        prog="directory-sync",
        description="Reconcile MongoDB identity records into Microsoft Entra ID",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    selection_kwargs = dict(
        choices=SELECTION_CHOICES,
        default=None,
        help="Select source records by the syncToEntra flag or by SYNC_TARGET_EMAILS "
             "(default: emails when SYNC_TARGET_EMAILS is set, else eligible)",
    )

    sync_parser = subparsers.add_parser("sync", help="Run one upsert pass and orphan scan")
    sync_parser.add_argument("--selection", "-s", **selection_kwargs)
    sync_parser.add_argument(
        "--no-orphan-scan",
        action="store_true",
        help="Skip the orphan scan after the upsert pass",
    )
    sync_parser.set_defaults(func=cmd_sync)

    orphans_parser = subparsers.add_parser("orphans", help="Report orphaned directory accounts")
    orphans_parser.add_argument("--selection", "-s", **selection_kwargs)
    orphans_parser.set_defaults(func=cmd_orphans)

    sched_parser = subparsers.add_parser("scheduler", help="Run the sync on an interval")
    sched_parser.add_argument("--selection", "-s", **selection_kwargs)
    sched_parser.set_defaults(func=cmd_scheduler)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()

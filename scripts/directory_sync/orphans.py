"""Orphan scan: directory accounts with no matching source record."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, Optional

from scripts.directory_sync.config import ConfigError, SyncConfig
from scripts.directory_sync.directory import DirectoryError

logger = logging.getLogger("directory_sync.orphans")

SCAN_FIELDS = ("userPrincipalName", "id")


def load_keep_list(entries: Iterable[str] = (), path: Optional[str] = None) -> frozenset[str]:
    """Merge inline keep-list entries with a keep-list file.

    The file holds one principal name per line; blank lines and lines
    starting with ``#`` are ignored. Entries are lower-cased.
    """
    names = {e.strip().lower() for e in entries if e and e.strip()}
    if path:
        if not os.path.isfile(path):
            raise ConfigError(f"Keep-list file not found: {path}")
        with open(path, encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if line and not line.startswith("#"):
                    names.add(line.lower())
    return frozenset(names)


@dataclass
class OrphanReport:
    orphans: list[str] = field(default_factory=list)
    accounts_scanned: int = 0
    pages: int = 0
    kept: int = 0
    complete: bool = True
    error: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.orphans)

    def render(self) -> str:
        lines = ["Entra ID users not found in the MongoDB sync selection:"]
        if not self.complete:
            lines.append(
                f"WARNING: directory enumeration stopped early ({self.error}); "
                "this list may be incomplete."
            )
        lines.append("=" * 50)
        lines.extend(self.orphans)
        return "\n".join(lines) + "\n"

    def write(self, path: str) -> None:
        """Overwrite ``path`` with the report."""
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(self.render())


class OrphanScanner:
    """Enumerate the whole directory and report accounts without a source record."""

    def __init__(self, config: SyncConfig, directory, source) -> None:
        self.config = config
        self.directory = directory
        self.source = source

    def candidate_key(self, principal_name: str) -> str:
        suffix = self.config.upn_suffix
        if principal_name.lower().endswith(suffix.lower()):
            return principal_name[: -len(suffix)]
        return principal_name.split("@", 1)[0]

    def scan(self, keep_list: Iterable[str] = ()) -> OrphanReport:
        keep = {k.lower() for k in keep_list}
        report = OrphanReport()
        principal_names: list[str] = []

        logger.info("Fetching all Entra ID users")
        try:
            for page in self.directory.iter_pages(SCAN_FIELDS):
                report.pages += 1
                for account in page:
                    if account.principal_name:
                        principal_names.append(account.principal_name)
        except DirectoryError as exc:
            report.complete = False
            report.error = str(exc)
            logger.error(
                "Error fetching users (page %d), continuing with %d collected: %s",
                report.pages + 1, len(principal_names), exc,
            )
        report.accounts_scanned = len(principal_names)
        logger.info(
            "Fetched %d page(s), %d principal names",
            report.pages, report.accounts_scanned,
            extra={"records": report.accounts_scanned},
        )

        source_ids = self.source.source_ids()

        for principal_name in principal_names:
            if principal_name.lower() in keep:
                report.kept += 1
                continue
            if self.candidate_key(principal_name) not in source_ids:
                report.orphans.append(principal_name)

        if report.orphans:
            logger.warning(
                "Found %d Entra ID user(s) not present in the source selection",
                report.count,
                extra={"records": report.count},
            )
        else:
            logger.info("All Entra ID users match a source record")
        if not report.complete:
            logger.warning("Orphan report may be incomplete: %s", report.error)
        return report

    def scan_and_write(
        self, keep_list: Iterable[str] = (), path: Optional[str] = None
    ) -> OrphanReport:
        """Scan, then write the report artifact when at least one orphan was found."""
        report = self.scan(keep_list)
        path = path or self.config.orphan_report_path
        if report.orphans:
            report.write(path)
            logger.info("Orphan details saved to %s", path)
        return report

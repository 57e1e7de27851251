"""Upsert pass: create or update one Entra ID account per source record."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Iterable, Optional

from scripts.directory_sync.builder import AccountBuilder
from scripts.directory_sync.config import SyncConfig
from scripts.directory_sync.differ import FieldDiffer
from scripts.directory_sync.directory import DirectoryError
from scripts.directory_sync.models import (
    RecordOutcome,
    SourceRecord,
    SyncAction,
    SyncReport,
)
from scripts.directory_sync.passwords import generate_password

logger = logging.getLogger("directory_sync.engine")

LOOKUP_FIELDS = (
    "id",
    "displayName",
    "mail",
    "givenName",
    "surname",
    "companyName",
    "otherMails",
    "userPrincipalName",
    "usageLocation",
    "country",
    "onPremisesImmutableId",
)


class ReconciliationEngine:
    """Drive lookup -> diff -> create/update/skip for every source record.

    Records are processed one at a time. A failure on one record is
    logged and counted; it never stops the pass.
    """

    def __init__(
        self,
        config: SyncConfig,
        source,
        directory,
        differ: Optional[FieldDiffer] = None,
        builder: Optional[AccountBuilder] = None,
        password_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.config = config
        self.source = source
        self.directory = directory
        self.differ = differ or FieldDiffer(config)
        self.builder = builder or AccountBuilder(config)
        self._password_factory = password_factory or (
            lambda: generate_password(config.password_length)
        )

    @property
    def lookup_fields(self) -> tuple[str, ...]:
        return LOOKUP_FIELDS + (self.config.affiliation_attribute,)

    def run(self, records: Optional[Iterable[SourceRecord]] = None) -> SyncReport:
        """Process every record from the source (or ``records`` when given)."""
        run_id = str(uuid.uuid4())
        started = time.monotonic()
        report = SyncReport()
        logger.info("Starting upsert pass", extra={"run_id": run_id})

        for record in records if records is not None else self.source.records():
            report.add(self.process(record))

        logger.info(
            "Upsert complete: %s",
            report.summary(),
            extra={
                "run_id": run_id,
                "records": len(report.outcomes),
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return report

    def process(self, record: SourceRecord) -> RecordOutcome:
        if not record.is_valid:
            logger.warning(
                "Skipping record: missing required 'uid' or 'email'",
                extra={"action": SyncAction.INVALID.value},
            )
            return RecordOutcome(SyncAction.INVALID)

        principal_name = self.config.principal_name(record.source_id)
        logger.info(
            "Processing %s (source anchor %s)", principal_name, record.source_id,
            extra={"principal_name": principal_name},
        )

        try:
            existing = self.directory.find_by_principal_name(
                principal_name, self.lookup_fields
            )
        except DirectoryError as exc:
            logger.error(
                "Lookup failed for %s: %s", principal_name, exc,
                extra={"principal_name": principal_name, "action": SyncAction.FAILED.value},
            )
            return RecordOutcome(SyncAction.FAILED, principal_name, error=str(exc))

        if existing is None:
            return self._create(record, principal_name)
        return self._update_if_changed(record, principal_name, existing)

    def _create(self, record: SourceRecord, principal_name: str) -> RecordOutcome:
        logger.info(
            "User not found, creating %s", principal_name,
            extra={"principal_name": principal_name},
        )
        payload = self.builder.build_create(
            record,
            principal_name,
            anchor=record.source_id,
            password=self._password_factory(),
        )
        try:
            created = self.directory.create(payload)
        except DirectoryError as exc:
            logger.error(
                "Failed to create %s: %s", principal_name, exc,
                extra={"principal_name": principal_name, "action": SyncAction.FAILED.value},
            )
            return RecordOutcome(SyncAction.FAILED, principal_name, error=str(exc))

        logger.info(
            "Created %s with immutable anchor set", principal_name,
            extra={
                "principal_name": principal_name,
                "action": SyncAction.CREATE.value,
                "account_id": created.account_id,
            },
        )
        return RecordOutcome(SyncAction.CREATE, principal_name, account_id=created.account_id)

    def _update_if_changed(self, record, principal_name, existing) -> RecordOutcome:
        if existing.immutable_id is not None and existing.immutable_id != record.source_id:
            logger.warning(
                "Immutable id %r of %s does not match source uid %r; it will not be updated",
                existing.immutable_id, principal_name, record.source_id,
                extra={"principal_name": principal_name, "account_id": existing.account_id},
            )

        changes = self.differ.changes(record, existing)
        for change in changes:
            logger.info(
                "%s needs update: %r -> %r",
                change.field.value, change.current, change.expected,
                extra={
                    "principal_name": principal_name,
                    "action": "change",
                    "fields": [change.field.value],
                },
            )
        changed = frozenset(c.field for c in changes)

        if not changed:
            logger.info(
                "User exists and no attribute changes detected",
                extra={"principal_name": principal_name, "action": SyncAction.SKIP.value},
            )
            return RecordOutcome(SyncAction.SKIP, principal_name, account_id=existing.account_id)

        payload = self.builder.build_update(record)
        try:
            self.directory.update(existing.account_id, payload)
        except DirectoryError as exc:
            logger.error(
                "Failed to update %s: %s", existing.account_id, exc,
                extra={"principal_name": principal_name, "action": SyncAction.FAILED.value},
            )
            return RecordOutcome(
                SyncAction.FAILED, principal_name, changed, existing.account_id, str(exc)
            )

        logger.info(
            "Updated %s", existing.account_id,
            extra={
                "principal_name": principal_name,
                "action": SyncAction.UPDATE.value,
                "account_id": existing.account_id,
                "fields": sorted(f.value for f in changed),
            },
        )
        return RecordOutcome(SyncAction.UPDATE, principal_name, changed, existing.account_id)

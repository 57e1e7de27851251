"""Attribute diffing between a source record and an existing directory account."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from scripts.directory_sync.config import SyncConfig
from scripts.directory_sync.models import ChangedField, SourceRecord, TargetAccount


@dataclass(frozen=True)
class FieldChange:
    field: ChangedField
    current: Optional[str]
    expected: Optional[str]


def _split_affiliations(value: Optional[str]) -> frozenset[str]:
    return frozenset(part for part in (value or "").split(";") if part)


class FieldDiffer:
    """Decide which tracked attributes of an account need an update.

    Absent values on either side compare as the empty string. Emails
    compare case-insensitively. ``otherMails`` is satisfied as long as it
    contains the primary email; stale extra addresses are left alone.
    Affiliations compare by membership, so a reordered attribute is not
    a change.
    """

    def __init__(self, config: SyncConfig) -> None:
        self.config = config

    def changes(self, record: SourceRecord, account: TargetAccount) -> list[FieldChange]:
        expected_mail = record.primary_email or ""
        found: list[FieldChange] = []

        def check(changed: bool, name: ChangedField, current, expected) -> None:
            if changed:
                found.append(FieldChange(name, current, expected))

        check(
            (account.display_name or "") != record.display_name,
            ChangedField.DISPLAY_NAME, account.display_name, record.display_name,
        )
        check(
            (account.mail or "").lower() != expected_mail.lower(),
            ChangedField.MAIL, account.mail, record.primary_email,
        )
        check(
            (account.given_name or "") != (record.given_name or ""),
            ChangedField.GIVEN_NAME, account.given_name, record.given_name,
        )
        check(
            (account.surname or "") != (record.family_name or ""),
            ChangedField.SURNAME, account.surname, record.family_name,
        )
        check(
            (account.company_name or "") != (record.organization or ""),
            ChangedField.COMPANY_NAME, account.company_name, record.organization,
        )
        other_mails = {m.lower() for m in account.other_mails if m}
        check(
            expected_mail.lower() not in other_mails,
            ChangedField.OTHER_MAILS, ";".join(account.other_mails), record.primary_email,
        )
        check(
            (account.usage_location or "") != self.config.usage_location,
            ChangedField.USAGE_LOCATION, account.usage_location, self.config.usage_location,
        )
        check(
            (account.country or "") != self.config.country,
            ChangedField.COUNTRY, account.country, self.config.country,
        )
        check(
            _split_affiliations(account.affiliations)
            != frozenset(record.aggregated_affiliations()),
            ChangedField.AFFILIATIONS, account.affiliations, record.affiliation_value,
        )
        return found

    def diff(self, record: SourceRecord, account: TargetAccount) -> frozenset[ChangedField]:
        """Return the set of fields that differ; empty means nothing to do."""
        return frozenset(change.field for change in self.changes(record, account))

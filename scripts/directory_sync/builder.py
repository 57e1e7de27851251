"""Project source records into Microsoft Graph user payloads."""

from __future__ import annotations

from typing import Any, Optional

from scripts.directory_sync.config import SyncConfig
from scripts.directory_sync.models import SourceRecord

AccountPayload = dict[str, Any]


class AccountBuilder:
    """Build create and update bodies for ``/users``.

    The immutable anchor and the initial password only exist on the
    create path: ``build_update`` has no way to receive them.
    """

    def __init__(self, config: SyncConfig) -> None:
        self.config = config

    def _common(self, record: SourceRecord) -> AccountPayload:
        payload: AccountPayload = {"displayName": record.display_name}

        if record.primary_email:
            payload["mail"] = record.primary_email
        if record.given_name is not None:
            payload["givenName"] = record.given_name
        if record.family_name is not None:
            payload["surname"] = record.family_name
        if record.organization is not None:
            payload["companyName"] = record.organization
        if record.primary_email:
            # Graph expects a list of strings here
            payload["otherMails"] = [record.primary_email]

        affiliations = record.affiliation_value
        if affiliations:
            payload[self.config.affiliation_attribute] = affiliations

        payload["usageLocation"] = self.config.usage_location
        payload["country"] = self.config.country
        return payload

    def build_update(self, record: SourceRecord) -> AccountPayload:
        return self._common(record)

    def build_create(
        self,
        record: SourceRecord,
        principal_name: str,
        anchor: str,
        password: str,
    ) -> AccountPayload:
        payload = self._common(record)
        payload["onPremisesImmutableId"] = anchor
        payload["accountEnabled"] = True
        payload["userPrincipalName"] = principal_name
        if record.primary_email:
            payload["mailNickname"] = record.primary_email.split("@", 1)[0]
        payload["passwordProfile"] = {
            "password": password,
            "forceChangePasswordNextSignIn": False,
        }
        return payload

    def build(
        self,
        record: SourceRecord,
        principal_name: str,
        anchor: Optional[str] = None,
        password: Optional[str] = None,
    ) -> AccountPayload:
        """Create payload when both anchor and password are given, else update payload."""
        if anchor and password:
            return self.build_create(record, principal_name, anchor, password)
        return self.build_update(record)

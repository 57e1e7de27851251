"""Shared fixtures: in-memory directory and source stand-ins."""

from __future__ import annotations

import itertools
from typing import Any, Optional

import pytest

from scripts.directory_sync.config import SyncConfig
from scripts.directory_sync.directory import DirectoryError
from scripts.directory_sync.models import SourceRecord, TargetAccount

DOMAIN = "id.example.org"
AFFILIATION_ATTRIBUTE = "extension_test_eduAffiliations"


class FakeDirectory:
    """Graph /users stand-in that applies creates and patches in memory."""

    def __init__(self, page_size: int = 2, fail_on_page: Optional[int] = None) -> None:
        self.users: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.page_size = page_size
        self.fail_on_page = fail_on_page
        self.fail_create = False
        self.fail_update = False
        self.fail_lookup = False
        self._ids = itertools.count(1)

    def add(self, **user: Any) -> str:
        account_id = user.setdefault("id", f"acc-{next(self._ids)}")
        self.users[account_id] = dict(user)
        return account_id

    def _account(self, data: dict[str, Any]) -> TargetAccount:
        return TargetAccount.from_graph(data, AFFILIATION_ATTRIBUTE)

    def find_by_principal_name(self, name, fields):
        self.calls.append(("find", name, tuple(fields)))
        if self.fail_lookup:
            raise DirectoryError("lookup boom", status_code=500)
        for data in self.users.values():
            if data.get("userPrincipalName") == name:
                return self._account(data)
        return None

    def create(self, payload):
        self.calls.append(("create", payload))
        if self.fail_create:
            raise DirectoryError("conflict", status_code=409, code="Request_BadRequest")
        data = {k: v for k, v in payload.items() if k != "passwordProfile"}
        account_id = self.add(**data)
        return self._account(self.users[account_id])

    def update(self, account_id, payload):
        self.calls.append(("update", account_id, payload))
        if self.fail_update:
            raise DirectoryError("update boom", status_code=500)
        self.users[account_id].update(payload)

    def iter_pages(self, fields):
        self.calls.append(("list", tuple(fields)))
        users = list(self.users.values())
        for page_no, start in enumerate(range(0, len(users), self.page_size), start=1):
            if self.fail_on_page == page_no:
                raise DirectoryError("page boom", status_code=503)
            yield [self._account(u) for u in users[start : start + self.page_size]]

    def actions(self) -> list[str]:
        return [c[0] for c in self.calls if c[0] in ("create", "update")]

    def close(self) -> None:
        pass


class FakeSource:
    def __init__(self, records: list[SourceRecord]) -> None:
        self._records = list(records)

    def records(self):
        return iter(self._records)

    def source_ids(self) -> set[str]:
        return {r.source_id for r in self._records if r.source_id}

    def close(self) -> None:
        pass


def make_record(source_id: Optional[str] = "p1", **overrides: Any) -> SourceRecord:
    doc = {
        "uid": source_id,
        "email": f"{source_id}@mail.example.com",
        "chosenName": "Anna",
        "givenName": "Johanna",
        "familyName": "de Vries",
        "schacHomeOrganization": "example.edu",
        "linkedAccounts": [{"eduPersonAffiliations": ["student@example.edu"]}],
        "syncToEntra": True,
    }
    doc.update(overrides)
    doc = {k: v for k, v in doc.items() if v is not None}
    return SourceRecord.from_document(doc)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(
        domain=DOMAIN,
        affiliation_attribute=AFFILIATION_ATTRIBUTE,
        orphan_report_path="orphaned_entra_users.txt",
    )


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()

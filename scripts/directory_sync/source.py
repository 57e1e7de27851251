"""Read-only access to the MongoDB identity collection."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping, Optional

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from scripts.directory_sync.config import MongoConfig, SyncConfig
from scripts.directory_sync.models import SourceRecord

logger = logging.getLogger("directory_sync.source")

PROJECTION = {
    "_id": 1,
    "uid": 1,
    "email": 1,
    "chosenName": 1,
    "givenName": 1,
    "familyName": 1,
    "schacHomeOrganization": 1,
    "linkedAccounts": 1,
    "syncToEntra": 1,
}


class SourceError(Exception):
    """The source store could not be queried."""


class MongoSourceRepository:
    """Query authoritative identity documents. Never writes."""

    def __init__(
        self,
        config: MongoConfig,
        sync_config: SyncConfig,
        client: Optional[MongoClient] = None,
        selection: Optional[str] = None,
    ) -> None:
        if client is None:
            try:
                client = MongoClient(
                    config.uri,
                    serverSelectionTimeoutMS=config.server_selection_timeout_ms,
                )
            except PyMongoError as exc:
                raise SourceError(f"Invalid MongoDB settings: {exc}") from exc
        self._client = client
        self._collection = self._client[config.database][config.collection]
        self._target_emails = list(sync_config.target_emails)
        self.selection = selection or ("emails" if self._target_emails else "eligible")
        if self.selection not in ("emails", "eligible"):
            raise ValueError(f"Unknown selection {self.selection!r}")

    def ping(self) -> None:
        try:
            self._client.admin.command("ping")
        except PyMongoError as exc:
            raise SourceError(f"MongoDB connection error: {exc}") from exc

    def close(self) -> None:
        self._client.close()

    def _find(self, query: Mapping[str, Any]) -> Iterator[SourceRecord]:
        try:
            cursor = self._collection.find(dict(query), PROJECTION)
            for doc in cursor:
                yield SourceRecord.from_document(doc)
        except PyMongoError as exc:
            raise SourceError(f"MongoDB query failed: {exc}") from exc

    def find_eligible(self) -> Iterator[SourceRecord]:
        return self._find({"syncToEntra": True})

    def find_by_emails(self, emails: Iterable[str]) -> Iterator[SourceRecord]:
        return self._find({"email": {"$in": list(emails)}})

    def records(self) -> Iterator[SourceRecord]:
        """Records selected by the configured allow-list, or by the eligible flag."""
        if self.selection == "emails":
            return self.find_by_emails(self._target_emails)
        return self.find_eligible()

    def source_ids(self) -> set[str]:
        ids = {r.source_id for r in self.records() if r.source_id}
        logger.info("Loaded %d unique source ids", len(ids), extra={"records": len(ids)})
        return ids

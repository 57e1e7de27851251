"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables (local dev)
  - .env files (python-dotenv)
  - AWS Secrets Manager / GCP Secret Manager references for secrets
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from scripts.directory_sync.secrets import resolve_mongo_uri, resolve_secret

DEFAULT_AFFILIATION_ATTRIBUTE = "extension_53ae2cfceab542d79c2e1d7f826ef431_eduAffiliations"


class ConfigError(ValueError):
    """Configuration is missing or malformed; the run cannot start."""


@dataclass(frozen=True)
class GraphConfig:
    tenant_id: str
    client_id: str
    client_secret: str
    api_base_url: str = "https://graph.microsoft.com/v1.0"
    authority_url: str = "https://login.microsoftonline.com"
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class MongoConfig:
    uri: str
    database: str = "identity"
    collection: str = "users"
    server_selection_timeout_ms: int = 5000


@dataclass(frozen=True)
class SyncConfig:
    domain: str
    affiliation_attribute: str = DEFAULT_AFFILIATION_ATTRIBUTE
    usage_location: str = "NL"
    country: str = "NL"
    # Empty = select by the syncToEntra flag
    target_emails: tuple[str, ...] = ()
    keep_list: tuple[str, ...] = ()
    keep_list_file: Optional[str] = None
    orphan_report_path: str = "orphaned_entra_users.txt"
    password_length: int = 32

    @property
    def upn_suffix(self) -> str:
        return f"@{self.domain}"

    def principal_name(self, source_id: str) -> str:
        return f"{source_id}{self.upn_suffix}"


@dataclass(frozen=True)
class SchedulerConfig:
    interval_min: int = 60
    misfire_grace_time: int = 300


@dataclass(frozen=True)
class DirectorySyncConfig:
    graph: GraphConfig
    mongo: MongoConfig
    sync: SyncConfig
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


def _required(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise ConfigError(f"{name} environment variable is required")
    return value


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _csv(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name, "")
    return tuple(s.strip() for s in raw.split(",") if s.strip())


def load_config() -> DirectorySyncConfig:
    """Load configuration from environment variables.

    Raises ConfigError when a required key is missing or a numeric value
    cannot be parsed. Secret references are resolved here so that a
    broken secret also fails before any work starts.
    """
    load_dotenv()

    graph = GraphConfig(
        tenant_id=_required("GRAPH_TENANT_ID"),
        client_id=_required("GRAPH_CLIENT_ID"),
        client_secret=resolve_secret(_required("GRAPH_CLIENT_SECRET")),
        api_base_url=os.environ.get(
            "GRAPH_API_BASE_URL", "https://graph.microsoft.com/v1.0"
        ).rstrip("/"),
        authority_url=os.environ.get(
            "GRAPH_AUTHORITY_URL", "https://login.microsoftonline.com"
        ).rstrip("/"),
        timeout_seconds=_float("GRAPH_TIMEOUT_SECONDS", 30.0),
    )

    mongo = MongoConfig(
        uri=resolve_mongo_uri(),
        database=os.environ.get("MONGO_DATABASE", "identity"),
        collection=os.environ.get("MONGO_COLLECTION", "users"),
        server_selection_timeout_ms=_int("MONGO_TIMEOUT_MS", 5000),
    )

    domain = _required("SYNC_DOMAIN").lstrip("@")
    sync = SyncConfig(
        domain=domain,
        affiliation_attribute=os.environ.get(
            "SYNC_AFFILIATION_ATTRIBUTE", DEFAULT_AFFILIATION_ATTRIBUTE
        ),
        usage_location=os.environ.get("SYNC_USAGE_LOCATION", "NL"),
        country=os.environ.get("SYNC_COUNTRY", "NL"),
        target_emails=_csv("SYNC_TARGET_EMAILS"),
        keep_list=_csv("SYNC_KEEP_LIST"),
        keep_list_file=os.environ.get("SYNC_KEEP_LIST_FILE") or None,
        orphan_report_path=os.environ.get(
            "SYNC_ORPHAN_REPORT_PATH", "orphaned_entra_users.txt"
        ),
        password_length=_int("SYNC_PASSWORD_LENGTH", 32),
    )
    if sync.password_length < 8:
        raise ConfigError("SYNC_PASSWORD_LENGTH must be at least 8")

    scheduler = SchedulerConfig(
        interval_min=_int("SYNC_SCHEDULE_INTERVAL_MIN", 60),
        misfire_grace_time=_int("SYNC_MISFIRE_GRACE_SECONDS", 300),
    )

    return DirectorySyncConfig(graph=graph, mongo=mongo, sync=sync, scheduler=scheduler)

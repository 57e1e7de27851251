"""Value types shared by the reconciliation engine and the orphan scanner."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


class ChangedField(str, enum.Enum):
    """Tracked directory attributes that can drift from the source record."""

    DISPLAY_NAME = "displayName"
    MAIL = "mail"
    GIVEN_NAME = "givenName"
    SURNAME = "surname"
    COMPANY_NAME = "companyName"
    OTHER_MAILS = "otherMails"
    USAGE_LOCATION = "usageLocation"
    COUNTRY = "country"
    AFFILIATIONS = "affiliations"


class SyncAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"
    INVALID = "invalid"
    FAILED = "failed"


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


@dataclass(frozen=True)
class SourceRecord:
    """One authoritative identity document from the source store.

    ``None`` means the key was absent in the document; an empty string is
    kept as-is.
    """

    source_id: Optional[str]
    primary_email: Optional[str]
    chosen_name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    organization: Optional[str] = None
    # One tuple of affiliation strings per linked account
    affiliations: tuple[tuple[str, ...], ...] = ()
    eligible_for_sync: bool = False

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "SourceRecord":
        groups = []
        for linked in _as_list(doc.get("linkedAccounts")):
            if not isinstance(linked, Mapping):
                continue
            if linked.get("eduPersonAffiliations") is None:
                continue
            groups.append(
                tuple(str(a) for a in _as_list(linked["eduPersonAffiliations"]))
            )

        source_id = _optional_str(doc.get("uid"))
        email = _optional_str(doc.get("email"))
        return cls(
            source_id=source_id or None,
            primary_email=email or None,
            chosen_name=_optional_str(doc.get("chosenName")),
            given_name=_optional_str(doc.get("givenName")),
            family_name=_optional_str(doc.get("familyName")),
            organization=_optional_str(doc.get("schacHomeOrganization")),
            affiliations=tuple(groups),
            eligible_for_sync=bool(doc.get("syncToEntra", False)),
        )

    @property
    def is_valid(self) -> bool:
        return bool(self.source_id) and bool(self.primary_email)

    @property
    def display_name(self) -> str:
        return f"{self.chosen_name or ''} {self.family_name or ''}"

    def aggregated_affiliations(self) -> list[str]:
        """Flatten all linked-account affiliations, first occurrence wins."""
        seen: dict[str, None] = {}
        for group in self.affiliations:
            for affiliation in group:
                if affiliation:
                    seen.setdefault(affiliation, None)
        return list(seen)

    @property
    def affiliation_value(self) -> str:
        return ";".join(self.aggregated_affiliations())


@dataclass(frozen=True)
class TargetAccount:
    """A Microsoft Entra ID user as returned by Graph."""

    account_id: str
    principal_name: Optional[str] = None
    display_name: Optional[str] = None
    mail: Optional[str] = None
    given_name: Optional[str] = None
    surname: Optional[str] = None
    company_name: Optional[str] = None
    other_mails: tuple[str, ...] = ()
    usage_location: Optional[str] = None
    country: Optional[str] = None
    immutable_id: Optional[str] = None
    affiliations: Optional[str] = None

    @classmethod
    def from_graph(
        cls, data: Mapping[str, Any], affiliation_attribute: Optional[str] = None
    ) -> "TargetAccount":
        affiliations = None
        if affiliation_attribute:
            affiliations = _optional_str(data.get(affiliation_attribute))
        return cls(
            account_id=str(data.get("id", "")),
            principal_name=data.get("userPrincipalName"),
            display_name=data.get("displayName"),
            mail=data.get("mail"),
            given_name=data.get("givenName"),
            surname=data.get("surname"),
            company_name=data.get("companyName"),
            other_mails=tuple(data.get("otherMails") or ()),
            usage_location=data.get("usageLocation"),
            country=data.get("country"),
            immutable_id=data.get("onPremisesImmutableId"),
            affiliations=affiliations,
        )


@dataclass
class RecordOutcome:
    action: SyncAction
    principal_name: Optional[str] = None
    changed: frozenset[ChangedField] = frozenset()
    account_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncReport:
    """Counters and per-record outcomes for one reconciliation pass."""

    outcomes: list[RecordOutcome] = field(default_factory=list)

    def add(self, outcome: RecordOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, action: SyncAction) -> int:
        return sum(1 for o in self.outcomes if o.action is action)

    @property
    def created(self) -> int:
        return self.count(SyncAction.CREATE)

    @property
    def updated(self) -> int:
        return self.count(SyncAction.UPDATE)

    @property
    def skipped(self) -> int:
        return self.count(SyncAction.SKIP)

    @property
    def invalid(self) -> int:
        return self.count(SyncAction.INVALID)

    @property
    def failed(self) -> int:
        return self.count(SyncAction.FAILED)

    def summary(self) -> dict[str, int]:
        return {
            "processed": len(self.outcomes),
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "invalid": self.invalid,
            "failed": self.failed,
        }

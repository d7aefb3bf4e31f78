"""Value types shared by the matching engine.

Everything here is immutable once built.  Accounts are snapshots read from
one of the three systems; the remaining types are produced while a single
chunk of source records is matched and never outlive that call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class System(str, Enum):
    """The three systems whose accounts live in the record store."""

    SOURCE = "source"
    DIMENSIONS = "dimensions"
    SALESFORCE = "salesforce"


REFERENCE_SYSTEMS: tuple[System, ...] = (System.DIMENSIONS, System.SALESFORCE)


class MatchStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    REVIEW = "REVIEW"


class AggregateStatus(str, Enum):
    BOTH = "BOTH"
    DIM_ONLY = "DIM_ONLY"
    SF_ONLY = "SF_ONLY"
    NEW = "NEW"


# Canonical (Salesforce-style) field name -> Account attribute
CANONICAL_FIELDS: dict[str, str] = {
    "Name": "name",
    "Phone": "phone",
    "Website": "website",
    "Email": "email",
    "BillingStreet": "billing_street",
    "BillingCity": "billing_city",
    "BillingPostalCode": "billing_postal_code",
    "BillingCountry": "billing_country",
    "AccountNumber": "account_number",
}


@dataclass(frozen=True)
class Account:
    """A business account snapshot in canonical field form."""

    name: str = ""
    phone: str = ""
    website: str = ""
    email: str = ""
    billing_street: str = ""
    billing_city: str = ""
    billing_postal_code: str = ""
    billing_country: str = ""
    account_number: str = ""
    id: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    def get(self, canonical_field: str) -> str:
        """Return the value of a canonical field such as ``"BillingCity"``."""
        return getattr(self, CANONICAL_FIELDS[canonical_field])


@dataclass(frozen=True)
class NormalizedAccount:
    normalized_name: str
    normalized_phone: str
    normalized_website: str
    normalized_billing_street: str


@dataclass(frozen=True)
class StoredRecord:
    """A row as read back from the record store: its id and raw payload."""

    id: int
    raw: dict[str, Any]


@dataclass(frozen=True)
class SearchTerm:
    """Normalised retrieval keys for one source account.  ``None`` means unusable."""

    id: int
    name: str | None
    phone: str | None
    website: str | None

    @property
    def is_empty(self) -> bool:
        return self.name is None and self.phone is None and self.website is None


@dataclass(frozen=True)
class CandidateRow:
    """One raw hit from a batched candidate query."""

    source_id: int
    record: StoredRecord
    priority: int


@dataclass(frozen=True)
class Candidate:
    account: Account
    priority: int  # phone=100, domain=95, name trigram 0-80


@dataclass(frozen=True)
class MatchResult:
    score: int
    matched_fields: tuple[str, ...]
    is_above_threshold: bool


@dataclass(frozen=True)
class ValidationPair:
    id: int  # dense, 1-based within one chunk run
    source: Account
    target: Account
    heuristic_score: int
    matched_fields: tuple[str, ...]
    target_type: System


@dataclass(frozen=True)
class ValidationVerdict:
    is_match: bool
    confidence: int
    reasoning: str
    error: str | None = None


@dataclass(frozen=True)
class ReferenceMatch:
    """Best candidate found in one reference system for one source account."""

    target: Account | None
    score: int
    matched_fields: tuple[str, ...]
    verdict: ValidationVerdict | None
    status: MatchStatus | None


NO_MATCH = ReferenceMatch(target=None, score=0, matched_fields=(), verdict=None, status=None)


@dataclass(frozen=True)
class MatchedAccountRecord:
    source: Account
    dimensions: ReferenceMatch
    salesforce: ReferenceMatch
    final_status: AggregateStatus


@dataclass
class ChunkStats:
    both: int = 0
    dim_only: int = 0
    sf_only: int = 0
    new: int = 0
    ai_validated: int = 0

    def record(self, status: AggregateStatus) -> None:
        if status is AggregateStatus.BOTH:
            self.both += 1
        elif status is AggregateStatus.DIM_ONLY:
            self.dim_only += 1
        elif status is AggregateStatus.SF_ONLY:
            self.sf_only += 1
        else:
            self.new += 1

    def as_dict(self) -> dict[str, int]:
        return {
            "both": self.both,
            "dim_only": self.dim_only,
            "sf_only": self.sf_only,
            "new": self.new,
            "ai_validated": self.ai_validated,
        }


@dataclass(frozen=True)
class ChunkResult:
    matches: list[MatchedAccountRecord]
    total_source_accounts: int
    processed_count: int
    has_more: bool
    stats: ChunkStats

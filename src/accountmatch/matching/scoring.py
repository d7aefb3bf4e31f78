"""Heuristic match scoring between two accounts.

The score is a sum of per-field point contributions.  Phone and website
only ever score on exact normalised equality; the remaining fields earn
partial credit from a bounded string similarity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import structlog
from rapidfuzz import fuzz

from accountmatch.matching.models import Account, MatchResult
from accountmatch.matching.normalize import (
    extract_email_domain,
    normalize_address,
    normalize_company_name,
    normalize_phone,
    normalize_string,
    normalize_website,
)

logger = structlog.get_logger(__name__)

FieldStatus = Literal["exact", "partial", "none"]


@dataclass(frozen=True)
class TieredWeight:
    """Separate point values for an exact and a partial ("alike") match."""

    exact: int
    alike: int


FIELD_WEIGHTS: dict[str, int | TieredWeight] = {
    "Name": TieredWeight(exact=85, alike=50),
    "Phone": 30,
    "Website": 25,
    "BillingStreet": 20,
    "BillingCity": 10,
}

CROSS_DOMAIN_BONUS = 25
CROSS_DOMAIN_FIELD = "Website (email domain)"

MATCH_THRESHOLD = 85
MAX_POSSIBLE_SCORE = 195  # advisory only, never enforced

NAME_SIMILARITY_THRESHOLD = 0.6
DEFAULT_SIMILARITY_THRESHOLD = 0.8


@dataclass(frozen=True)
class FieldComparison:
    status: FieldStatus
    similarity: float


def _exact_only(norm_a: str, norm_b: str) -> FieldComparison:
    if norm_a and norm_a == norm_b:
        return FieldComparison("exact", 1.0)
    return FieldComparison("none", 0.0)


def similarity(a: str, b: str) -> float:
    """Normalised indel similarity in [0, 1]."""
    return fuzz.ratio(a, b) / 100.0


def compare_field_values(
    field: str,
    value_a: str,
    value_b: str,
    country: str | None = None,
) -> FieldComparison:
    """Compare two raw values of the canonical field *field*."""
    if not value_a or not value_b:
        return FieldComparison("none", 0.0)

    if field == "Phone":
        return _exact_only(normalize_phone(value_a, country), normalize_phone(value_b, country))
    if field == "Website":
        return _exact_only(normalize_website(value_a), normalize_website(value_b))

    if field == "Name":
        norm_a, norm_b = normalize_company_name(value_a), normalize_company_name(value_b)
    elif "Street" in field or "Address" in field:
        norm_a, norm_b = normalize_address(value_a), normalize_address(value_b)
    else:
        norm_a, norm_b = normalize_string(value_a), normalize_string(value_b)

    if norm_a == norm_b:
        return FieldComparison("exact", 1.0)

    score = similarity(norm_a, norm_b)
    threshold = NAME_SIMILARITY_THRESHOLD if field == "Name" else DEFAULT_SIMILARITY_THRESHOLD
    return FieldComparison("partial" if score > threshold else "none", score)


def field_points(weight: int | TieredWeight, comparison: FieldComparison) -> int:
    if comparison.status == "none":
        return 0
    if isinstance(weight, TieredWeight):
        if comparison.status == "exact":
            return weight.exact
        return round(weight.alike * comparison.similarity)
    return round(weight * comparison.similarity)


def _cross_domain_match(source: Account, target: Account) -> bool:
    """Email domain on one side equals the website domain on the other."""
    if not source.website and source.email and target.website:
        domain = extract_email_domain(source.email)
        return domain is not None and domain == normalize_website(target.website)
    if not target.website and target.email and source.website:
        domain = extract_email_domain(target.email)
        return domain is not None and domain == normalize_website(source.website)
    return False


def calculate_match_score(
    source: Account,
    target: Account,
    country: str | None = None,
    *,
    weights: dict[str, int | TieredWeight] = FIELD_WEIGHTS,
    match_threshold: int = MATCH_THRESHOLD,
) -> MatchResult:
    """Score how likely *source* and *target* describe the same business.

    Parameters
    ----------
    source, target:
        Accounts in canonical form.
    country:
        Country used to normalise both phone numbers.  Defaults to each
        account's own billing country.
    weights:
        Points per canonical field; a :class:`TieredWeight` gives separate
        exact and partial values.
    match_threshold:
        Score at or above which ``is_above_threshold`` is set.
    """
    total = 0
    matched_fields: list[str] = []

    for field, weight in weights.items():
        value_a, value_b = source.get(field), target.get(field)
        if field == "Phone" and country is None:
            comparison = _exact_only(
                normalize_phone(value_a, source.billing_country) if value_a else "",
                normalize_phone(value_b, target.billing_country) if value_b else "",
            )
        else:
            comparison = compare_field_values(field, value_a, value_b, country)

        points = field_points(weight, comparison)
        if comparison.status != "none":
            total += points
            matched_fields.append(f"{field} ({comparison.status})")

    if _cross_domain_match(source, target):
        total += CROSS_DOMAIN_BONUS
        matched_fields.append(CROSS_DOMAIN_FIELD)

    if total < 0:
        logger.error("invalid_score_zeroed", score=total, source=source.name, target=target.name)
        total = 0

    return MatchResult(
        score=total,
        matched_fields=tuple(matched_fields),
        is_above_threshold=total >= match_threshold,
    )

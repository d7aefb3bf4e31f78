"""Final status resolution from heuristic score and AI verdict."""

from __future__ import annotations

from accountmatch.matching.models import AggregateStatus, MatchStatus, ValidationVerdict
from accountmatch.matching.validation import AI_MAX_SCORE, AI_MIN_SCORE

HIGH_CONFIDENCE = 80
MEDIUM_CONFIDENCE = 60
STRONG_HEURISTIC = 85
WEAK_HEURISTIC = 50

PRESENT_STATUSES = frozenset({MatchStatus.CONFIRMED, MatchStatus.REVIEW})


def determine_final_status(
    heuristic_score: int,
    verdict: ValidationVerdict | None,
    *,
    min_score: int = AI_MIN_SCORE,
    max_score: int = AI_MAX_SCORE,
) -> MatchStatus:
    """Resolve one (score, verdict) pair to CONFIRMED, REJECTED or REVIEW.

    An errored verdict counts as no verdict.  Without a verdict a score
    above *max_score* still goes to REVIEW rather than being confirmed
    automatically.
    """
    if verdict is None or verdict.error:
        if heuristic_score > max_score:
            return MatchStatus.REVIEW
        if heuristic_score < min_score:
            return MatchStatus.REJECTED
        return MatchStatus.REVIEW

    if verdict.confidence >= HIGH_CONFIDENCE:
        return MatchStatus.CONFIRMED if verdict.is_match else MatchStatus.REJECTED

    if verdict.confidence >= MEDIUM_CONFIDENCE:
        if verdict.is_match and heuristic_score >= STRONG_HEURISTIC:
            return MatchStatus.CONFIRMED
        if not verdict.is_match and heuristic_score < WEAK_HEURISTIC:
            return MatchStatus.REJECTED

    return MatchStatus.REVIEW


def is_present(status: MatchStatus | None) -> bool:
    return status in PRESENT_STATUSES


def combine_statuses(
    dimensions: MatchStatus | None,
    salesforce: MatchStatus | None,
) -> AggregateStatus:
    """Cross-reference status from the two per-system statuses."""
    in_dimensions = is_present(dimensions)
    in_salesforce = is_present(salesforce)
    if in_dimensions and in_salesforce:
        return AggregateStatus.BOTH
    if in_dimensions:
        return AggregateStatus.DIM_ONLY
    if in_salesforce:
        return AggregateStatus.SF_ONLY
    return AggregateStatus.NEW

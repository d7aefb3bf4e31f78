"""Tests for final status resolution."""

from __future__ import annotations

import pytest

from accountmatch.matching.models import AggregateStatus, MatchStatus, ValidationVerdict
from accountmatch.matching.status import combine_statuses, determine_final_status


def _verdict(is_match: bool, confidence: int, error: str | None = None) -> ValidationVerdict:
    return ValidationVerdict(is_match=is_match, confidence=confidence, reasoning="", error=error)


class TestDetermineFinalStatus:
    """Tests for the score/verdict decision table."""

    def test_no_verdict_in_band_is_review(self):
        assert determine_final_status(90, None) is MatchStatus.REVIEW

    def test_no_verdict_above_ceiling_is_review(self):
        assert determine_final_status(110, None) is MatchStatus.REVIEW

    def test_no_verdict_below_floor_is_rejected(self):
        assert determine_final_status(10, None) is MatchStatus.REJECTED

    def test_errored_verdict_treated_as_missing(self):
        assert determine_final_status(10, _verdict(True, 99, error="timeout")) is MatchStatus.REJECTED
        assert determine_final_status(50, _verdict(True, 99, error="timeout")) is MatchStatus.REVIEW

    def test_high_confidence_match_confirms(self):
        assert determine_final_status(70, _verdict(True, 85)) is MatchStatus.CONFIRMED

    def test_high_confidence_no_match_rejects(self):
        assert determine_final_status(40, _verdict(False, 90)) is MatchStatus.REJECTED

    def test_medium_confidence_match_with_strong_heuristic_confirms(self):
        assert determine_final_status(90, _verdict(True, 65)) is MatchStatus.CONFIRMED

    def test_medium_confidence_match_with_weak_heuristic_reviews(self):
        assert determine_final_status(60, _verdict(True, 65)) is MatchStatus.REVIEW

    def test_medium_confidence_no_match_with_weak_heuristic_rejects(self):
        assert determine_final_status(40, _verdict(False, 65)) is MatchStatus.REJECTED

    def test_medium_confidence_no_match_with_moderate_heuristic_reviews(self):
        assert determine_final_status(55, _verdict(False, 65)) is MatchStatus.REVIEW

    def test_low_confidence_reviews(self):
        assert determine_final_status(95, _verdict(True, 40)) is MatchStatus.REVIEW
        assert determine_final_status(30, _verdict(False, 0)) is MatchStatus.REVIEW

    def test_boundaries(self):
        assert determine_final_status(85, _verdict(True, 60)) is MatchStatus.CONFIRMED
        assert determine_final_status(50, _verdict(False, 60)) is MatchStatus.REVIEW
        assert determine_final_status(20, None) is MatchStatus.REVIEW
        assert determine_final_status(19, None) is MatchStatus.REJECTED

    def test_custom_band(self):
        assert determine_final_status(25, None, min_score=30, max_score=90) is MatchStatus.REJECTED

    def test_pure(self):
        verdict = _verdict(True, 65)
        assert determine_final_status(90, verdict) is determine_final_status(90, verdict)


@pytest.mark.parametrize(
    ("dimensions", "salesforce", "expected"),
    [
        (MatchStatus.CONFIRMED, MatchStatus.REVIEW, AggregateStatus.BOTH),
        (MatchStatus.CONFIRMED, MatchStatus.REJECTED, AggregateStatus.DIM_ONLY),
        (MatchStatus.REVIEW, None, AggregateStatus.DIM_ONLY),
        (None, MatchStatus.CONFIRMED, AggregateStatus.SF_ONLY),
        (MatchStatus.REJECTED, MatchStatus.REVIEW, AggregateStatus.SF_ONLY),
        (MatchStatus.REJECTED, MatchStatus.REJECTED, AggregateStatus.NEW),
        (None, None, AggregateStatus.NEW),
    ],
)
def test_combine_statuses(dimensions, salesforce, expected):
    assert combine_statuses(dimensions, salesforce) is expected

"""Shared fixtures and in-memory fakes for matching tests."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Sequence

import pytest

from accountmatch.config import Settings
from accountmatch.matching.models import CandidateRow, SearchTerm, StoredRecord, System

_PAIR_ID = re.compile(r"^ID: (\d+)$", re.MULTILINE)


class FakeStore:
    """Record store serving fixed source records and canned candidate rows.

    Candidate rows are filtered to the source ids actually searched, the
    way the SQL join would, and every search call is recorded.
    """

    def __init__(
        self,
        sources: Sequence[dict] = (),
        candidates: dict[System, list[CandidateRow]] | None = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.sources = [StoredRecord(id=i + 1, raw=raw) for i, raw in enumerate(sources)]
        self.candidates = candidates or {}
        self.delay = delay
        self.error = error
        self.search_calls: list[tuple[System, list[SearchTerm]]] = []

    async def count_source_accounts(self) -> int:
        return len(self.sources)

    async def fetch_source_page(self, limit: int, offset: int) -> list[StoredRecord]:
        return self.sources[offset : offset + limit]

    async def search_candidates(
        self,
        terms: Sequence[SearchTerm],
        target: System,
        limit_per_field: int,
    ) -> list[CandidateRow]:
        self.search_calls.append((target, list(terms)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        ids = {term.id for term in terms}
        return [row for row in self.candidates.get(target, []) if row.source_id in ids]


class FakeJudge:
    """Judge that answers through *respond* and tracks concurrency."""

    def __init__(
        self,
        respond: Callable[[str], str] | None = None,
        *,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.respond = respond or answer_all("YES", 90)
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.respond(prompt)
        finally:
            self.in_flight -= 1


def prompt_ids(prompt: str) -> list[int]:
    return [int(match) for match in _PAIR_ID.findall(prompt)]


def answer_all(decision: str, confidence: int) -> Callable[[str], str]:
    def respond(prompt: str) -> str:
        return "\n".join(
            f"{pair_id},{decision},{confidence},canned answer" for pair_id in prompt_ids(prompt)
        )

    return respond


def candidate_row(source_id: int, record_id: int, raw: dict, priority: int = 95) -> CandidateRow:
    return CandidateRow(
        source_id=source_id,
        record=StoredRecord(id=record_id, raw=raw),
        priority=priority,
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="",
        store_timeout=1.0,
        judge_timeout=1.0,
        ai_min_score=20,
        ai_max_score=100,
        ai_batch_size=5,
        ai_parallel_batches=2,
        default_country="australia",
    )

"""Batched candidate retrieval against a reference system.

One set-oriented query is issued per reference system for a whole batch of
source accounts; issuing a query per account does not scale to reference
tables with hundreds of thousands of rows.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import structlog

from accountmatch.matching.mapping import FieldMapping
from accountmatch.matching.models import (
    Account,
    Candidate,
    CandidateRow,
    SearchTerm,
    StoredRecord,
    System,
)
from accountmatch.matching.normalize import normalize_account

logger = structlog.get_logger(__name__)

PHONE_PRIORITY = 100
DOMAIN_PRIORITY = 95
NAME_PRIORITY_SCALE = 80

# Keys at or below these lengths are too short to retrieve on
MIN_NAME_LENGTH = 2
MIN_PHONE_LENGTH = 5
MIN_DOMAIN_LENGTH = 3


class RecordStore(Protocol):
    """Read capabilities the matching engine needs from the record store."""

    async def count_source_accounts(self) -> int: ...

    async def fetch_source_page(self, limit: int, offset: int) -> list[StoredRecord]: ...

    async def search_candidates(
        self,
        terms: Sequence[SearchTerm],
        target: System,
        limit_per_field: int,
    ) -> list[CandidateRow]: ...


def build_search_term(id: int, account: Account, default_country: str | None = None) -> SearchTerm:
    """Derive the retrieval keys for one account, dropping unusable ones."""
    normalized = normalize_account(account, account.billing_country or default_country)
    name = normalized.normalized_name
    phone = normalized.normalized_phone
    website = normalized.normalized_website
    return SearchTerm(
        id=id,
        name=name if len(name) > MIN_NAME_LENGTH else None,
        phone=phone if len(phone) > MIN_PHONE_LENGTH else None,
        website=website if len(website) > MIN_DOMAIN_LENGTH else None,
    )


def merge_candidate_rows(
    rows: Sequence[CandidateRow],
    mapping: FieldMapping,
) -> dict[int, list[Candidate]]:
    """Deduplicate rows by (source id, target id), keeping the highest priority.

    Candidates for each source id come back ordered by priority (highest
    first) and then by target id, so the order is stable across runs.
    """
    best: dict[tuple[int, int], CandidateRow] = {}
    for row in rows:
        key = (row.source_id, row.record.id)
        current = best.get(key)
        if current is None or row.priority > current.priority:
            best[key] = row

    grouped: dict[int, list[CandidateRow]] = {}
    for row in best.values():
        grouped.setdefault(row.source_id, []).append(row)

    return {
        source_id: [
            Candidate(
                account=mapping.to_account(row.record.raw, id=row.record.id),
                priority=row.priority,
            )
            for row in sorted(group, key=lambda r: (-r.priority, r.record.id))
        ]
        for source_id, group in grouped.items()
    }


async def find_candidates_batch(
    store: RecordStore,
    source_batch: Sequence[tuple[int, Account]],
    target: System,
    mapping: FieldMapping,
    *,
    limit_per_field: int = 20,
    default_country: str | None = None,
) -> dict[int, list[Candidate]]:
    """Retrieve plausible *target* matches for every account in *source_batch*.

    Parameters
    ----------
    store:
        Record store providing ``search_candidates``.
    source_batch:
        ``(id, account)`` pairs; the ids key the returned mapping.
    target:
        Reference system to search.
    mapping:
        Field mapping used to turn the target's raw payloads into accounts.
    limit_per_field:
        Cap on name-similarity hits per source account.

    Returns
    -------
    dict
        Every id in *source_batch* maps to a (possibly empty) candidate list.
    """
    results: dict[int, list[Candidate]] = {id: [] for id, _ in source_batch}

    terms = [build_search_term(id, account, default_country) for id, account in source_batch]
    terms = [term for term in terms if not term.is_empty]
    if not terms:
        return results

    rows = await store.search_candidates(terms, target, limit_per_field)
    for source_id, candidates in merge_candidate_rows(rows, mapping).items():
        if source_id in results:
            results[source_id] = candidates

    logger.info(
        "candidates_retrieved",
        target=target.value,
        accounts=len(source_batch),
        searched=len(terms),
        rows=len(rows),
    )
    return results

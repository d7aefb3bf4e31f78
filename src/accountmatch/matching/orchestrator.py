"""Chunk orchestrator.

Drives one page of source accounts through retrieval, scoring, optional AI
validation and status resolution, and returns the page's results in input
order together with running statistics and a continuation flag.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence
from typing import TypeVar

import structlog

from accountmatch.config import Settings, get_settings
from accountmatch.matching.candidates import RecordStore, find_candidates_batch
from accountmatch.matching.errors import CandidateRetrievalError, StoreError
from accountmatch.matching.judge import JudgeBackend
from accountmatch.matching.mapping import ChunkFieldMappings
from accountmatch.matching.models import (
    NO_MATCH,
    REFERENCE_SYSTEMS,
    Account,
    Candidate,
    ChunkResult,
    ChunkStats,
    MatchedAccountRecord,
    MatchResult,
    ReferenceMatch,
    System,
    ValidationPair,
    ValidationVerdict,
)
from accountmatch.matching.scoring import calculate_match_score
from accountmatch.matching.status import combine_statuses, determine_final_status
from accountmatch.matching.validation import (
    MISSING_RESULT_REASON,
    should_validate_with_ai,
    validate_batch,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def _with_timeout(call: Awaitable[T], timeout: float | None, what: str) -> T:
    try:
        return await asyncio.wait_for(call, timeout)
    except TimeoutError as exc:
        raise CandidateRetrievalError(f"{what} timed out after {timeout}s") from exc


def select_best_candidate(
    source: Account,
    candidates: Sequence[Candidate],
    country: str | None = None,
    *,
    match_threshold: int = 85,
) -> tuple[Candidate, MatchResult] | None:
    """Score every candidate and keep the highest-scoring one.

    Ties go to the candidate seen first (strict ``>``), so candidate order
    decides between equal scores.
    """
    best: tuple[Candidate, MatchResult] | None = None
    for candidate in candidates:
        result = calculate_match_score(
            source, candidate.account, country, match_threshold=match_threshold
        )
        if best is None or result.score > best[1].score:
            best = (candidate, result)
    return best


async def process_chunk(
    store: RecordStore,
    field_mapping: ChunkFieldMappings,
    page_size: int,
    offset: int = 0,
    enable_ai_validation: bool = True,
    *,
    judge: JudgeBackend | None = None,
    settings: Settings | None = None,
) -> ChunkResult:
    """Match one page of source accounts against both reference systems.

    Parameters
    ----------
    store:
        Record store used for the count, the page read and the two batched
        candidate searches.
    field_mapping:
        Mappings turning each system's raw payloads into accounts.
    page_size, offset:
        The page of source accounts to process.
    enable_ai_validation:
        Send ambiguous matches to *judge*.  Requires a judge.
    settings:
        Thresholds and timeouts; defaults to :func:`get_settings`.

    Raises
    ------
    CandidateRetrievalError
        When reading the page or retrieving candidates fails or times out.
        Judge failures never raise; they show up as errored verdicts.
    """
    if settings is None:
        settings = get_settings()
    if enable_ai_validation and judge is None:
        raise ValueError("enable_ai_validation requires a judge backend")

    stats = ChunkStats()

    # 1. Count and page
    try:
        total = await _with_timeout(
            store.count_source_accounts(), settings.store_timeout, "Source count"
        )
        records = []
        if offset < total:
            records = await _with_timeout(
                store.fetch_source_page(page_size, offset),
                settings.store_timeout,
                "Source page read",
            )
    except CandidateRetrievalError:
        raise
    except StoreError as exc:
        raise CandidateRetrievalError(str(exc)) from exc

    if not records:
        logger.info("chunk_empty", offset=offset, total=total)
        return ChunkResult(
            matches=[], total_source_accounts=total, processed_count=0, has_more=False, stats=stats
        )

    sources = [
        (position, field_mapping.source.to_account(record.raw, id=record.id))
        for position, record in enumerate(records)
    ]

    # 2. One batched retrieval per reference system, run concurrently
    # A failed search cancels its sibling before the error propagates
    try:
        async with asyncio.TaskGroup() as group:
            tasks = {
                system: group.create_task(
                    _with_timeout(
                        find_candidates_batch(
                            store,
                            sources,
                            system,
                            field_mapping.for_system(system),
                            limit_per_field=settings.candidate_limit,
                            default_country=settings.default_country,
                        ),
                        settings.store_timeout,
                        f"Candidate retrieval from {system.value}",
                    )
                )
                for system in REFERENCE_SYSTEMS
            }
    except ExceptionGroup as eg:
        raise eg.exceptions[0]
    candidates_by_system = {system: task.result() for system, task in tasks.items()}

    # 3. Best candidate per (source, reference system)
    best: dict[tuple[int, System], tuple[Candidate, MatchResult] | None] = {}
    for position, account in sources:
        country = account.billing_country or settings.default_country
        for system in REFERENCE_SYSTEMS:
            best[(position, system)] = select_best_candidate(
                account,
                candidates_by_system[system].get(position, []),
                country,
                match_threshold=settings.match_threshold,
            )

    # 4. Ambiguous-band pairs, numbered densely from 1
    pairs: list[ValidationPair] = []
    pair_ids: dict[tuple[int, System], int] = {}
    for position, account in sources:
        for system in REFERENCE_SYSTEMS:
            found = best[(position, system)]
            if found is None:
                continue
            candidate, result = found
            if should_validate_with_ai(result.score, settings.ai_min_score, settings.ai_max_score):
                pair = ValidationPair(
                    id=len(pairs) + 1,
                    source=account,
                    target=candidate.account,
                    heuristic_score=result.score,
                    matched_fields=result.matched_fields,
                    target_type=system,
                )
                pairs.append(pair)
                pair_ids[(position, system)] = pair.id

    # 5. AI validation
    verdicts: dict[int, ValidationVerdict] = {}
    if enable_ai_validation and pairs:
        verdicts = await validate_batch(
            pairs,
            judge,
            batch_size=settings.ai_batch_size,
            parallel_batches=settings.ai_parallel_batches,
            timeout=settings.judge_timeout,
        )
        stats.ai_validated = sum(
            1
            for verdict in verdicts.values()
            if verdict.error is None and verdict.reasoning != MISSING_RESULT_REASON
        )

    # 6-7. Resolve statuses in input order
    matches: list[MatchedAccountRecord] = []
    for position, account in sources:
        per_system: dict[System, ReferenceMatch] = {}
        for system in REFERENCE_SYSTEMS:
            found = best[(position, system)]
            if found is None:
                per_system[system] = NO_MATCH
                continue
            candidate, result = found
            pair_id = pair_ids.get((position, system))
            verdict = verdicts.get(pair_id) if pair_id is not None else None
            per_system[system] = ReferenceMatch(
                target=candidate.account,
                score=result.score,
                matched_fields=result.matched_fields,
                verdict=verdict,
                status=determine_final_status(
                    result.score,
                    verdict,
                    min_score=settings.ai_min_score,
                    max_score=settings.ai_max_score,
                ),
            )

        dimensions = per_system[System.DIMENSIONS]
        salesforce = per_system[System.SALESFORCE]
        final_status = combine_statuses(dimensions.status, salesforce.status)
        stats.record(final_status)
        matches.append(
            MatchedAccountRecord(
                source=account,
                dimensions=dimensions,
                salesforce=salesforce,
                final_status=final_status,
            )
        )

    # 8. Page result
    processed = len(records)
    result = ChunkResult(
        matches=matches,
        total_source_accounts=total,
        processed_count=processed,
        has_more=offset + processed < total,
        stats=stats,
    )
    logger.info(
        "chunk_processed",
        offset=offset,
        processed=processed,
        total=total,
        pairs=len(pairs),
        **stats.as_dict(),
    )
    return result

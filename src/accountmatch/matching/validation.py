"""AI-assisted validation of borderline matches.

Pairs whose heuristic score falls inside the ambiguous band are sent to the
judge in small sub-batches.  Each sub-batch becomes one prompt asking for
one ``ID,DECISION,CONFIDENCE,REASON`` line per pair.  The reply is parsed
defensively: junk is skipped, unknown and duplicate ids are ignored, and
every requested id ends up with a verdict whatever the judge sends back.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable, Sequence

import structlog

from accountmatch.matching.errors import JudgeError
from accountmatch.matching.judge import JudgeBackend
from accountmatch.matching.models import Account, ValidationPair, ValidationVerdict
from accountmatch.matching.normalize import derive_domain

logger = structlog.get_logger(__name__)

AI_MIN_SCORE = 20
AI_MAX_SCORE = 100
BATCH_SIZE = 5
PARALLEL_BATCHES = 2

DEFAULT_MATCH_CONFIDENCE = 70
DEFAULT_NO_MATCH_CONFIDENCE = 85

MISSING_RESULT_REASON = "AI did not return result"
FAILED_REASON = "AI validation failed"

_FENCE = re.compile(r"```[a-zA-Z]*")
_LEADING_JUNK = re.compile(r"^[^0-9]+")


def should_validate_with_ai(
    heuristic_score: int,
    min_score: int = AI_MIN_SCORE,
    max_score: int = AI_MAX_SCORE,
) -> bool:
    """True when *heuristic_score* lies in the inclusive ambiguous band."""
    return min_score <= heuristic_score <= max_score


def missing_verdict() -> ValidationVerdict:
    return ValidationVerdict(is_match=False, confidence=0, reasoning=MISSING_RESULT_REASON)


def failed_verdict(error: str) -> ValidationVerdict:
    return ValidationVerdict(is_match=False, confidence=0, reasoning=FAILED_REASON, error=error)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def _or_na(value: str) -> str:
    return value or "N/A"


def _describe(account: Account, suffix: str) -> str:
    address = ", ".join(
        part
        for part in (
            account.billing_street,
            account.billing_city,
            account.billing_postal_code,
            account.billing_country,
        )
        if part
    )
    return "\n".join([
        f"COMPANY_{suffix}: {_or_na(account.name)}",
        f"PHONE_{suffix}: {_or_na(account.phone)}",
        f"DOMAIN_{suffix}: {_or_na(derive_domain(account.website, account.email))}",
        f"CITY_{suffix}: {_or_na(account.billing_city)}",
        f"COUNTRY_{suffix}: {_or_na(account.billing_country)}",
        f"ADDRESS_{suffix}: {_or_na(address)}",
    ])


def build_batch_prompt(pairs: Sequence[ValidationPair]) -> str:
    """Build the judge prompt for one sub-batch of pairs."""
    blocks = [
        "\n".join([
            "---",
            f"ID: {pair.id}",
            _describe(pair.source, "A"),
            "",
            _describe(pair.target, "B"),
            "",
            f"HEURISTIC_SCORE: {pair.heuristic_score}",
        ])
        for pair in pairs
    ]
    pairs_text = "\n".join(blocks)

    return f"""You are a business data matching expert. Determine if each pair represents the SAME business entity.

IMPORTANT RULES:
1. Same website domain = SAME company (even with different addresses - could be multiple offices)
2. Same phone number = SAME company
3. Company suffixes (Ltd, Inc, Pty, Limited, GmbH) must be IGNORED when comparing names
4. Similar name + same city = likely SAME company
5. Different countries AND different domains = DIFFERENT companies
6. Different addresses in the same city could be branch offices = still SAME company

PAIRS TO ANALYZE:
{pairs_text}

Respond with EXACTLY one line per pair in this CSV format:
ID,DECISION,CONFIDENCE,REASON

Where:
- ID: the pair number
- DECISION: YES (same company) or NO (different companies)
- CONFIDENCE: 0-100 (how sure you are)
- REASON: brief explanation (no commas allowed in reason)

Do not write a header line, markdown or any other text.

Example response:
1,YES,95,Same website confirms identical business
2,NO,85,Same name but different countries

YOUR RESPONSE (only CSV lines):"""


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _parse_confidence(token: str) -> int | None:
    token = token.strip().rstrip("%").strip()
    try:
        value = int(token)
    except ValueError:
        return None
    if 0 <= value <= 100:
        return value
    return None


def _clean_lines(response: str) -> list[str]:
    if not isinstance(response, str):
        return []
    text = _FENCE.sub("", response)
    lines = []
    for line in text.splitlines():
        line = _LEADING_JUNK.sub("", line).strip()
        if line:
            lines.append(line)
    return lines


def parse_judge_response(
    response: str,
    requested_ids: Iterable[int],
) -> dict[int, ValidationVerdict]:
    """Parse the judge's CSV-ish reply into one verdict per requested id.

    Lines with an id outside *requested_ids* are dropped, repeated ids keep
    their first line, and a missing confidence falls back to a
    decision-dependent default.  Requested ids with no usable line get a
    ``confidence=0`` no-match verdict.  The result is ordered by id.
    """
    requested = set(requested_ids)
    verdicts: dict[int, ValidationVerdict] = {}

    for line in _clean_lines(response):
        tokens = line.split(",")
        try:
            pair_id = int(tokens[0].strip())
        except ValueError:
            logger.warning("judge_line_unparsed", line=line[:200])
            continue

        if pair_id not in requested:
            logger.warning("judge_unknown_id", id=pair_id)
            continue
        if pair_id in verdicts:
            logger.warning("judge_duplicate_id", id=pair_id)
            continue
        if len(tokens) < 2 or not tokens[1].strip():
            logger.warning("judge_line_unparsed", line=line[:200])
            continue

        is_match = tokens[1].strip().upper() in ("YES", "Y")

        confidence = _parse_confidence(tokens[2]) if len(tokens) > 2 else None
        if confidence is not None:
            reasoning = ",".join(tokens[3:]).strip()
        else:
            confidence = DEFAULT_MATCH_CONFIDENCE if is_match else DEFAULT_NO_MATCH_CONFIDENCE
            reasoning = ",".join(tokens[2:]).strip()

        verdicts[pair_id] = ValidationVerdict(
            is_match=is_match,
            confidence=confidence,
            reasoning=reasoning or "No reason provided",
        )

    for pair_id in requested - verdicts.keys():
        logger.warning("judge_missing_result", id=pair_id)
        verdicts[pair_id] = missing_verdict()

    return dict(sorted(verdicts.items()))


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def chunk_pairs(pairs: Sequence[ValidationPair], size: int) -> list[list[ValidationPair]]:
    return [list(pairs[i : i + size]) for i in range(0, len(pairs), size)]


async def _validate_sub_batch(
    judge: JudgeBackend,
    pairs: list[ValidationPair],
    semaphore: asyncio.Semaphore,
    timeout: float | None,
) -> dict[int, ValidationVerdict]:
    async with semaphore:
        prompt = build_batch_prompt(pairs)
        try:
            response = await asyncio.wait_for(judge.complete(prompt), timeout)
        except (JudgeError, TimeoutError) as exc:
            error = str(exc) or "Judge request timed out"
            logger.warning(
                "judge_batch_failed",
                ids=[pair.id for pair in pairs],
                error=error,
            )
            return {pair.id: failed_verdict(error) for pair in pairs}

    return parse_judge_response(response, [pair.id for pair in pairs])


async def validate_batch(
    pairs: Sequence[ValidationPair],
    judge: JudgeBackend,
    *,
    batch_size: int = BATCH_SIZE,
    parallel_batches: int = PARALLEL_BATCHES,
    timeout: float | None = None,
) -> dict[int, ValidationVerdict]:
    """Judge every pair, at most *parallel_batches* sub-batches in flight.

    A failed or timed-out sub-batch degrades its pairs to error verdicts
    rather than raising.  The returned mapping is ordered by pair id.
    """
    if not pairs:
        return {}

    batches = chunk_pairs(pairs, batch_size)
    logger.info("ai_validation_started", pairs=len(pairs), batches=len(batches))

    semaphore = asyncio.Semaphore(parallel_batches)
    results = await asyncio.gather(
        *(_validate_sub_batch(judge, batch, semaphore, timeout) for batch in batches)
    )

    verdicts: dict[int, ValidationVerdict] = {}
    for result in results:
        verdicts.update(result)
    return dict(sorted(verdicts.items()))

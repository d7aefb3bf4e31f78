"""Account matching engine: normalisation, retrieval, scoring and validation."""

from __future__ import annotations

from accountmatch.matching.candidates import (
    RecordStore,
    build_search_term,
    find_candidates_batch,
)
from accountmatch.matching.errors import (
    AccountMatchError,
    CandidateRetrievalError,
    FieldMappingError,
    JudgeError,
    StoreError,
)
from accountmatch.matching.judge import JudgeBackend, OllamaJudge
from accountmatch.matching.mapping import ChunkFieldMappings, FieldMapping
from accountmatch.matching.normalize import (
    derive_domain,
    extract_email_domain,
    normalize_account,
    normalize_address,
    normalize_company_name,
    normalize_phone,
    normalize_website,
)
from accountmatch.matching.orchestrator import process_chunk, select_best_candidate
from accountmatch.matching.scoring import calculate_match_score, compare_field_values
from accountmatch.matching.status import combine_statuses, determine_final_status
from accountmatch.matching.store import PostgresAccountStore
from accountmatch.matching.validation import (
    build_batch_prompt,
    parse_judge_response,
    should_validate_with_ai,
    validate_batch,
)

__all__ = [
    "AccountMatchError",
    "CandidateRetrievalError",
    "ChunkFieldMappings",
    "FieldMapping",
    "FieldMappingError",
    "JudgeBackend",
    "JudgeError",
    "OllamaJudge",
    "PostgresAccountStore",
    "RecordStore",
    "StoreError",
    "build_batch_prompt",
    "build_search_term",
    "calculate_match_score",
    "combine_statuses",
    "compare_field_values",
    "derive_domain",
    "determine_final_status",
    "extract_email_domain",
    "find_candidates_batch",
    "normalize_account",
    "normalize_address",
    "normalize_company_name",
    "normalize_phone",
    "normalize_website",
    "parse_judge_response",
    "process_chunk",
    "select_best_candidate",
    "should_validate_with_ai",
    "validate_batch",
]

"""PostgreSQL-backed record store for the matching engine.

All three systems share one ``accounts`` table tagged by ``source``.
Normalised columns are filled in at load time (see
:mod:`accountmatch.matching.loader`) so retrieval is index-only: equality
on ``normalized_phone`` / ``normalized_website`` and a ``pg_trgm``
similarity search on ``normalized_name``.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

import psycopg
import structlog

from accountmatch.db import fetch_all
from accountmatch.matching.errors import CandidateRetrievalError, StoreError
from accountmatch.matching.models import CandidateRow, SearchTerm, StoredRecord, System

logger = structlog.get_logger(__name__)

SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS pg_trgm;

CREATE TABLE IF NOT EXISTS accounts (
    id SERIAL PRIMARY KEY,
    source VARCHAR(20) NOT NULL CHECK (source IN ('source', 'dimensions', 'salesforce')),
    name TEXT,
    normalized_name TEXT,
    phone TEXT,
    normalized_phone TEXT,
    website TEXT,
    normalized_website TEXT,
    billing_street TEXT,
    normalized_billing_street TEXT,
    billing_city TEXT,
    billing_postal_code TEXT,
    billing_country TEXT,
    raw_data JSONB NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_accounts_source ON accounts (source);
CREATE INDEX IF NOT EXISTS idx_accounts_normalized_name
    ON accounts USING gin (normalized_name gin_trgm_ops);
CREATE INDEX IF NOT EXISTS idx_accounts_normalized_phone ON accounts (normalized_phone);
CREATE INDEX IF NOT EXISTS idx_accounts_normalized_website ON accounts (normalized_website);
CREATE INDEX IF NOT EXISTS idx_accounts_billing_city ON accounts (billing_city);
"""

# One round trip per reference system: search keys go in as a JSONB
# recordset, each predicate class becomes a CTE, and DISTINCT ON keeps the
# best priority per (source id, target id).
CANDIDATES_SQL = """
WITH search_terms AS (
    SELECT * FROM jsonb_to_recordset(%(terms)s::jsonb)
        AS t(id int, name text, phone text, website text)
),
phone_matches AS (
    SELECT st.id AS source_id, a.id, a.raw_data, 100 AS priority
    FROM search_terms st
    JOIN accounts a ON a.source = %(target)s AND a.normalized_phone = st.phone
    WHERE st.phone IS NOT NULL
),
website_matches AS (
    SELECT st.id AS source_id, a.id, a.raw_data, 95 AS priority
    FROM search_terms st
    JOIN accounts a ON a.source = %(target)s AND a.normalized_website = st.website
    WHERE st.website IS NOT NULL
),
name_matches AS (
    SELECT st.id AS source_id, a.id, a.raw_data,
           (similarity(a.normalized_name, st.name) * 80)::int AS priority
    FROM search_terms st
    JOIN LATERAL (
        SELECT id, raw_data, normalized_name
        FROM accounts
        WHERE source = %(target)s AND normalized_name %% st.name
        ORDER BY normalized_name <-> st.name
        LIMIT %(limit)s
    ) a ON true
    WHERE st.name IS NOT NULL
),
all_matches AS (
    SELECT * FROM phone_matches
    UNION ALL SELECT * FROM website_matches
    UNION ALL SELECT * FROM name_matches
)
SELECT DISTINCT ON (source_id, id) source_id, id, raw_data, priority
FROM all_matches
ORDER BY source_id, id, priority DESC
"""


class PostgresAccountStore:
    """Async record store over an open psycopg connection.

    The connection is injected; the store never opens or closes it.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self.conn = conn

    async def count_source_accounts(self) -> int:
        try:
            rows = await fetch_all(
                self.conn,
                "SELECT COUNT(*) AS count FROM accounts WHERE source = %s",
                (System.SOURCE.value,),
            )
        except psycopg.Error as exc:
            raise StoreError(f"Counting source accounts failed: {exc}") from exc
        return int(rows[0]["count"]) if rows else 0

    async def fetch_source_page(self, limit: int, offset: int) -> list[StoredRecord]:
        """Read one page of source accounts in stable ``id`` order."""
        try:
            rows = await fetch_all(
                self.conn,
                """
                SELECT id, raw_data
                FROM accounts
                WHERE source = %s
                ORDER BY id
                LIMIT %s OFFSET %s
                """,
                (System.SOURCE.value, limit, offset),
            )
        except psycopg.Error as exc:
            raise StoreError(f"Reading source page at offset {offset} failed: {exc}") from exc
        return [StoredRecord(id=row["id"], raw=row["raw_data"]) for row in rows]

    async def search_candidates(
        self,
        terms: Sequence[SearchTerm],
        target: System,
        limit_per_field: int,
    ) -> list[CandidateRow]:
        if not terms:
            return []
        payload = json.dumps(
            [{"id": t.id, "name": t.name, "phone": t.phone, "website": t.website} for t in terms]
        )
        try:
            rows = await fetch_all(
                self.conn,
                CANDIDATES_SQL,
                {"terms": payload, "target": target.value, "limit": limit_per_field},
            )
        except psycopg.Error as exc:
            raise CandidateRetrievalError(
                f"Candidate search against {target.value} failed: {exc}"
            ) from exc

        return [
            CandidateRow(
                source_id=row["source_id"],
                record=StoredRecord(id=row["id"], raw=row["raw_data"]),
                priority=row["priority"],
            )
            for row in rows
        ]

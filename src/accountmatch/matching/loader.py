"""Loading raw account payloads into the record store.

Each payload is mapped to canonical fields, normalised, and written with
its original JSON.  Inserts go in multi-row batches; a batch that fails is
retried one record at a time so a single bad row cannot sink the rest.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

import psycopg
import structlog
from psycopg.types.json import Jsonb

from accountmatch.db import execute_many, execute_query
from accountmatch.matching.mapping import FieldMapping
from accountmatch.matching.models import System
from accountmatch.matching.normalize import normalize_account
from accountmatch.matching.store import SCHEMA_SQL

logger = structlog.get_logger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

INSERT_SQL = """
    INSERT INTO accounts (
        source, name, normalized_name,
        phone, normalized_phone,
        website, normalized_website,
        billing_street, normalized_billing_street,
        billing_city, billing_postal_code, billing_country,
        raw_data
    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""


def sanitize_value(value: Any) -> Any:
    """Strip NUL bytes and control characters from strings, recursively."""
    if isinstance(value, str):
        return _CONTROL_CHARS.sub("", value)
    if isinstance(value, list):
        return [sanitize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: sanitize_value(v) for k, v in value.items()}
    return value


def ensure_schema(conn: psycopg.Connection) -> None:
    """Create the ``accounts`` table, its indexes and the pg_trgm extension."""
    # Multiple statements need the simple query protocol, so no params here
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)
    conn.commit()


def build_account_row(
    system: System,
    raw: Mapping[str, Any],
    mapping: FieldMapping,
    default_country: str | None = None,
) -> tuple:
    """Map, normalise and sanitise one payload into an INSERT parameter tuple."""
    clean = sanitize_value(dict(raw))
    account = mapping.to_account(clean)
    normalized = normalize_account(account, account.billing_country or default_country)
    return (
        system.value,
        account.name,
        normalized.normalized_name,
        account.phone,
        normalized.normalized_phone,
        account.website,
        normalized.normalized_website,
        account.billing_street,
        normalized.normalized_billing_street,
        account.billing_city,
        account.billing_postal_code,
        account.billing_country,
        Jsonb(clean),
    )


def insert_accounts_batch(
    conn: psycopg.Connection,
    system: System,
    records: Sequence[Mapping[str, Any]],
    mapping: FieldMapping,
    *,
    batch_size: int = 500,
    default_country: str | None = None,
) -> dict[str, int]:
    """Insert *records* for *system* in batches.

    Returns
    -------
    dict
        ``{"inserted": int, "skipped": int, "total": int}``
    """
    inserted = 0
    skipped = 0

    for i in range(0, len(records), batch_size):
        rows = [
            build_account_row(system, raw, mapping, default_country)
            for raw in records[i : i + batch_size]
        ]
        try:
            with conn.transaction():
                execute_many(conn, INSERT_SQL, rows)
            inserted += len(rows)
            continue
        except psycopg.Error as exc:
            logger.warning(
                "batch_insert_failed_falling_back",
                source=system.value,
                offset=i,
                size=len(rows),
                error=str(exc),
            )

        for row in rows:
            try:
                with conn.transaction():
                    execute_query(conn, INSERT_SQL, row)
                inserted += 1
            except psycopg.Error as exc:
                skipped += 1
                logger.warning("record_insert_failed", source=system.value, error=str(exc))

    conn.commit()
    logger.info(
        "accounts_inserted",
        source=system.value,
        inserted=inserted,
        skipped=skipped,
        total=len(records),
    )
    return {"inserted": inserted, "skipped": skipped, "total": len(records)}


def get_account_counts(conn: psycopg.Connection) -> dict[str, int]:
    """Return ``{"source", "dimensions", "salesforce", "total"}`` row counts."""
    rows = execute_query(
        conn,
        "SELECT source, COUNT(*) AS count FROM accounts GROUP BY source",
    )
    counts = {system.value: 0 for system in System}
    for row in rows:
        if row["source"] in counts:
            counts[row["source"]] = int(row["count"])
    counts["total"] = sum(counts.values())
    return counts


def clear_accounts(conn: psycopg.Connection, system: System | None = None) -> None:
    """Delete all accounts, or only those of *system*."""
    if system is None:
        execute_query(conn, "TRUNCATE TABLE accounts RESTART IDENTITY")
    else:
        execute_query(conn, "DELETE FROM accounts WHERE source = %s", (system.value,))
    conn.commit()

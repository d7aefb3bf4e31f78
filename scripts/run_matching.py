#!/usr/bin/env python3
"""CLI script to load accounts and run chunked matching against the reference systems."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pandas as pd
import structlog
import typer

from accountmatch.config import Settings, get_settings
from accountmatch.db import get_async_connection, get_connection
from accountmatch.matching.judge import OllamaJudge
from accountmatch.matching.loader import (
    clear_accounts,
    ensure_schema,
    get_account_counts,
    insert_accounts_batch,
)
from accountmatch.matching.mapping import ChunkFieldMappings
from accountmatch.matching.models import System
from accountmatch.matching.orchestrator import process_chunk
from accountmatch.matching.store import PostgresAccountStore

logger = structlog.get_logger(__name__)
app = typer.Typer()


def _load_mappings(path: Path | None) -> ChunkFieldMappings:
    if path is None:
        return ChunkFieldMappings.default()
    return ChunkFieldMappings.from_dict(json.loads(path.read_text()))


@app.command("init-db")
def init_db() -> None:
    """Create the accounts table and its indexes."""
    conn = get_connection(get_settings())
    try:
        ensure_schema(conn)
        logger.info("schema_ready")
    finally:
        conn.close()


@app.command()
def load(
    system: System = typer.Argument(..., help="System the file belongs to"),
    csv_path: Path = typer.Argument(..., help="CSV export of the system's accounts"),
    mapping_path: Path | None = typer.Option(
        None, "--mapping", help="JSON file with per-system field mappings"
    ),
    replace: bool = typer.Option(
        False, "--replace", help="Delete the system's existing accounts first"
    ),
) -> None:
    """Load a CSV export into the record store."""
    settings = get_settings()
    mapping = _load_mappings(mapping_path).for_system(system)

    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    records = df.to_dict(orient="records")
    logger.info("csv_loaded", path=str(csv_path), rows=len(records), source=system.value)

    conn = get_connection(settings)
    try:
        if replace:
            clear_accounts(conn, system)
        stats = insert_accounts_batch(
            conn,
            system,
            records,
            mapping,
            batch_size=settings.insert_batch_size,
            default_country=settings.default_country,
        )
        logger.info("load_complete", **stats)
    finally:
        conn.close()


@app.command()
def counts() -> None:
    """Log the number of stored accounts per system."""
    conn = get_connection(get_settings())
    try:
        logger.info("account_counts", **get_account_counts(conn))
    finally:
        conn.close()


async def _run_matching(
    settings: Settings,
    mappings: ChunkFieldMappings,
    chunk_size: int,
    start: int,
    max_chunks: int | None,
    enable_ai: bool,
) -> dict[str, int]:
    totals = {"processed": 0, "both": 0, "dim_only": 0, "sf_only": 0, "new": 0, "ai_validated": 0}
    conn = await get_async_connection(settings)
    judge = OllamaJudge.from_settings(settings) if enable_ai else None
    try:
        store = PostgresAccountStore(conn)
        offset = start
        chunks = 0
        while max_chunks is None or chunks < max_chunks:
            result = await process_chunk(
                store,
                mappings,
                chunk_size,
                offset,
                enable_ai,
                judge=judge,
                settings=settings,
            )
            chunks += 1
            totals["processed"] += result.processed_count
            for key, value in result.stats.as_dict().items():
                totals[key] += value
            logger.info("matching_progress", offset=offset, total=result.total_source_accounts, **totals)
            if not result.has_more:
                break
            offset += result.processed_count
    finally:
        if judge is not None:
            await judge.aclose()
        await conn.close()
    return totals


@app.command()
def match(
    chunk_size: int | None = typer.Option(None, help="Source accounts per chunk"),
    start: int = typer.Option(0, help="Offset of the first source account"),
    max_chunks: int | None = typer.Option(None, help="Stop after this many chunks"),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip AI validation of ambiguous matches"),
    mapping_path: Path | None = typer.Option(
        None, "--mapping", help="JSON file with per-system field mappings"
    ),
) -> None:
    """Match source accounts chunk by chunk until the feed is exhausted."""
    settings = get_settings()
    totals = asyncio.run(
        _run_matching(
            settings,
            _load_mappings(mapping_path),
            chunk_size or settings.chunk_size,
            start,
            max_chunks,
            settings.ai_enabled and not no_ai,
        )
    )
    logger.info("matching_complete", **totals)


if __name__ == "__main__":
    app()

"""
Storage boundary helpers.

Every read the aggregation engine issues goes through fetch_rows / fetch_one,
which translate driver failures into StorageError exactly once. Aggregations
combine their sources with gather_sources so a result is only assembled after
every source has resolved.
"""

from collections.abc import Awaitable
from typing import Any

import structlog
from sqlalchemy import Select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import PartialDataError, StorageError

logger = structlog.get_logger()


async def fetch_rows(db: AsyncSession, stmt: Select, source: str) -> list[Any]:
    """Execute a select and return ORM scalars (or rows for multi-column selects)."""
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as exc:
        logger.error("storage.query_failed", source=source, error=str(exc))
        raise StorageError(source) from exc
    if len(stmt.column_descriptions) == 1:
        return list(result.scalars().all())
    return list(result.all())


async def fetch_one(db: AsyncSession, stmt: Select, source: str) -> Any | None:
    rows = await fetch_rows(db, stmt.limit(1), source)
    return rows[0] if rows else None


async def gather_sources(**sources: Awaitable[Any]) -> dict[str, Any]:
    """
    Resolve every named source, then hand back all results together.

    Sources that share one AsyncSession are awaited one after another (a
    session does not allow concurrent operations). If some sources fail while
    others succeed, PartialDataError is raised; if all of them fail, the first
    error propagates unchanged. A source that is itself a gathered aggregation
    counts as one failed source.
    """
    results: dict[str, Any] = {}
    failures: dict[str, BaseException] = {}
    for name, awaitable in sources.items():
        try:
            results[name] = await awaitable
        except (StorageError, PartialDataError) as exc:
            failures[name] = exc

    if not failures:
        return results
    if not results:
        raise next(iter(failures.values()))

    logger.warning(
        "storage.partial_data",
        failed=sorted(failures),
        succeeded=sorted(results),
    )
    raise PartialDataError(sorted(failures), sorted(results)) from next(iter(failures.values()))

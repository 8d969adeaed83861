"""Connection pool and query helpers for Postgres."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import asyncpg

from .config import DatabaseSettings
from .errors import DatabaseError

LOGGER = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "sql" / "schema.sql"

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class Database:
    """Async helper owning the asyncpg pool.

    Every query goes through :meth:`_run`, which turns driver failures into
    :class:`~trending_tracker.errors.DatabaseError`.
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        self._settings = settings
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._settings.dsn,
                min_size=self._settings.min_pool_size,
                max_size=self._settings.max_pool_size,
                init=self._init_connection,
                command_timeout=self._settings.statement_timeout,
            )
        except _DRIVER_ERRORS as exc:
            LOGGER.error("Failed to connect to database: %s", exc)
            raise DatabaseError("Failed to connect to database", {"error": str(exc)}) from exc

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            LOGGER.info("Database pool closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def create_schema(self) -> None:
        pool = self._ensure_pool()
        statements = _load_sql_statements(SCHEMA_PATH)
        async with pool.acquire() as conn:
            for statement in statements:
                await conn.execute(statement)
        LOGGER.info("Applied %s schema statements", len(statements))

    async def ping(self) -> bool:
        try:
            await self.fetchval("SELECT 1")
        except DatabaseError:
            return False
        return True

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self._run("fetch", query, args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        return await self._run("fetchrow", query, args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._run("fetchval", query, args)

    async def _run(self, method: str, query: str, args: tuple[Any, ...]) -> Any:
        pool = self._ensure_pool()
        started = time.perf_counter()
        try:
            result = await getattr(pool, method)(query, *args)
        except _DRIVER_ERRORS as exc:
            LOGGER.error("Database query failed: %s (%s)", exc, _shorten(query))
            raise DatabaseError("Database query failed", {"error": str(exc)}) from exc
        LOGGER.debug(
            "Database query executed in %.1fms: %s",
            (time.perf_counter() - started) * 1000,
            _shorten(query),
        )
        return result

    def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise DatabaseError("Database pool has not been initialized")
        return self._pool

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        await conn.execute("SET TIME ZONE 'UTC'")
        await conn.execute(f"SET statement_timeout = {int(self._settings.statement_timeout * 1000)}")


def _shorten(query: str, size: int = 100) -> str:
    return " ".join(query.split())[:size]


def _load_sql_statements(path: Path) -> list[str]:
    script = path.read_text(encoding="utf-8")
    statements: list[str] = []
    for part in script.split(";"):
        statement = part.strip()
        if statement:
            statements.append(statement)
    return statements


__all__ = ["Database"]

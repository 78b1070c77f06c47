"""
Async database access helpers (raw SQL) using asyncpg.

This module owns the connection pool and is the only place that talks to the
driver. The pool is created lazily by the bootstrap coordinator on the first
request a process receives (see `bootstrap/coordinator.py`) and closed on
shutdown (see `api/main.py`).

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...

Returned rows are plain dicts. `Decimal` values (NUMERIC, and SUM() over
BIGINT) are converted to int/float so every result is JSON-serializable.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import settings
from .errors import (
    UNIQUE_VIOLATION,
    ConfigurationError,
    DatabaseConnectionError,
    QueryError,
    UniqueViolationError,
)

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


@dataclass(frozen=True)
class WriteResult:
    inserted_id: int | None
    rows_affected: int


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def _display_host(url: str) -> str:
    return urlsplit(url).hostname or "?"


def database_url() -> str:
    url = settings.database_url()
    if not url:
        raise ConfigurationError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


def database_auth_token() -> str:
    token = settings.database_auth_token()
    if not token:
        raise ConfigurationError("DATABASE_AUTH_TOKEN is not set.")
    return token


async def init_pool() -> None:
    """
    Create the pool and confirm the server answers. Safe to call repeatedly.
    """
    global _pool
    if _pool is not None:
        return None

    # Both values are checked before anything is created.
    url = database_url()
    auth_token = database_auth_token()

    logger.info("db_connect host=%s", _display_host(url))
    try:
        pool = await asyncpg.create_pool(
            dsn=url,
            password=auth_token,
            min_size=1,
            max_size=settings.db_pool_max_size(),
            command_timeout=settings.db_command_timeout(),
        )
    except (OSError, asyncio.TimeoutError, asyncpg.exceptions.PostgresConnectionError, asyncpg.InterfaceError) as exc:
        raise DatabaseConnectionError(f"Could not connect to database: {exc}") from exc
    except asyncpg.PostgresError as exc:
        # e.g. invalid password, unknown database
        raise DatabaseConnectionError(f"Database refused connection: {exc}") from exc

    try:
        with _translate_errors("SELECT 1"):
            await pool.fetchval("SELECT 1 AS connection_test")
    except Exception:
        await pool.close()
        raise

    _pool = pool
    logger.info("db_connected host=%s", _display_host(url))


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None
    logger.info("db_pool_closed")


def is_connected() -> bool:
    return _pool is not None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise DatabaseConnectionError("DB pool is not initialized. Call init_pool() first.")
    return _pool


def coerce(value: Any) -> Any:
    """
    Convert driver values into JSON-native Python values, recursively.

    Integers are kept exact: Python ints have no 2^53 ceiling.
    """
    if isinstance(value, asyncpg.Record):
        return {k: coerce(v) for k, v in value.items()}
    if isinstance(value, dict):
        return {k: coerce(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [coerce(v) for v in value]
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    return value


def _rows_affected(status: str | None) -> int:
    # Command tags look like "INSERT 0 1", "UPDATE 3", "DELETE 0".
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


@contextmanager
def _translate_errors(sql: str) -> Iterator[None]:
    try:
        yield
    except asyncpg.exceptions.PostgresConnectionError as exc:
        logger.error("db_connection_lost sql=%r error=%s", _first_line(sql), exc)
        raise DatabaseConnectionError(str(exc)) from exc
    except asyncpg.PostgresError as exc:
        sqlstate = getattr(exc, "sqlstate", None)
        if sqlstate == UNIQUE_VIOLATION:
            # Expected during idempotent inserts; callers decide whether it matters.
            logger.debug("db_unique_violation sql=%r error=%s", _first_line(sql), exc)
            raise UniqueViolationError(str(exc)) from exc
        logger.error("db_query_failed sql=%r sqlstate=%s error=%s", _first_line(sql), sqlstate, exc)
        raise QueryError(str(exc), sqlstate=sqlstate) from exc
    except (OSError, asyncio.TimeoutError, asyncpg.InterfaceError) as exc:
        logger.error("db_unreachable sql=%r error=%s", _first_line(sql), exc)
        raise DatabaseConnectionError(str(exc)) from exc


def _first_line(sql: str) -> str:
    return " ".join(sql.split())[:120]


async def fetch_one(sql: str, *args: Any) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    with _translate_errors(sql):
        row = await pool().fetchrow(sql, *args)
    return coerce(row) if row is not None else None


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    with _translate_errors(sql):
        rows = await pool().fetch(sql, *args)
    return [coerce(r) for r in rows]


async def execute(sql: str, *args: Any) -> None:
    """
    Run a statement (DDL or a write whose outcome is not needed). No result returned.
    """
    with _translate_errors(sql):
        await pool().execute(sql, *args)


async def execute_write(sql: str, *args: Any, returning: bool = False) -> WriteResult:
    """
    Run an INSERT/UPDATE/DELETE and report what it did.

    Pass `returning=True` for statements with a `RETURNING id` clause: the first
    returned id is reported as `inserted_id` and the returned row count as
    `rows_affected`. Otherwise the count comes from the command status tag.
    """
    if returning:
        with _translate_errors(sql):
            rows = await pool().fetch(sql, *args)
        inserted_id = coerce(rows[0]["id"]) if rows and "id" in rows[0].keys() else None
        return WriteResult(inserted_id=inserted_id, rows_affected=len(rows))

    with _translate_errors(sql):
        status = await pool().execute(sql, *args)
    return WriteResult(inserted_id=None, rows_affected=_rows_affected(status))

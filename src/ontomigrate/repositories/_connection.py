"""
Connection and row helpers shared by the PostgreSQL and SQLite repositories.

`execute_with_connection` lets every PostgreSQL repository accept either an
AsyncEngine (the repository opens its own connection or transaction) or an
AsyncConnection owned by the caller (used as-is, so several repositories
can share one transaction).
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ontomigrate.serialization import json_dumps, json_loads


@asynccontextmanager
async def execute_with_connection(
    conn: AsyncConnection | AsyncEngine,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Yield a connection ready for execute() calls.

    Args:
        conn: Database connection or engine
        transactional: For engines, wrap the block in begin() (writes)
            instead of connect() (reads). Ignored for connections; the
            caller owns their transaction.

    Example:
        >>> async with execute_with_connection(self._conn) as conn:
        ...     await conn.execute(insert_query, params)
    """
    if isinstance(conn, AsyncEngine):
        if transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    else:
        yield conn


def encode_json(value: Any) -> str | None:
    """Serialize a JSON column value, keeping None as SQL NULL."""
    if value is None:
        return None
    return json_dumps(value)


def decode_json(value: Any, default: Any = None) -> Any:
    """
    Decode a JSON column value.

    PostgreSQL drivers return JSONB as already-decoded objects while SQLite
    returns TEXT, so both shapes are accepted.
    """
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        return json_loads(value)
    return value

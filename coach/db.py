"""
Database connection pool and RLS-scoped connection managers.

All database access goes through user_conn() or system_conn().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager

import asyncpg

from coach.config import settings

pool: asyncpg.Pool | None = None


async def init_pool() -> None:
    """
    Initialize the connection pool.
    Called once at application startup.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=settings.DATABASE_URL,
        min_size=2,
        max_size=20,
        command_timeout=60,
        init=_init_connection,
    )


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """
    Initialize each new connection.
    Messages live in a JSONB column, so decode JSON types to Python lists/dicts.
    """
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "json",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


@asynccontextmanager
async def user_conn(user_id: str):
    """
    Acquire a database connection scoped to a pseudo-user via RLS.

    Every query through this connection can only see/modify conversations
    belonging to this user. Enforced by Postgres RLS policies.

    Usage:
        async with user_conn(user_id) as conn:
            row = await conn.fetchrow("SELECT * FROM conversations WHERE id = $1", conversation_id)

    Args:
        user_id: Pseudo-user id to scope the connection to

    Yields:
        asyncpg.Connection with RLS context set
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            # All policies reference current_setting('app.user_id')
            await conn.execute(
                "SELECT set_config('app.user_id', $1, true)",
                user_id,
            )
            yield conn


@asynccontextmanager
async def system_conn():
    """
    Acquire a database connection without user scoping.

    For system operations only (test setup and cleanup, maintenance scripts).

    Yields:
        asyncpg.Connection without RLS scoping
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            # RLS policies treat an empty app.user_id as a system connection.
            await conn.execute("SELECT set_config('app.user_id', '', true)")
            yield conn

"""Database connection and migration management."""

import json
from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from governance.config import get_settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# Global connection pool
_pool: Optional[asyncpg.Pool] = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode json/jsonb columns into Python objects on every pooled connection."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Raises:
        RuntimeError: If pool is not initialized
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database() -> asyncpg.Pool:
    """Initialize the database connection pool."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
            init=_init_connection,
        )
        logger.info(
            "database_pool_created",
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        return _pool
    except Exception as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise


async def close_database() -> None:
    """Close the database connection pool."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations(migrations_dir: Path = MIGRATIONS_DIR) -> None:
    """Run all SQL migrations in filename order.

    Migrations are idempotent (IF NOT EXISTS) and can be re-run safely.
    """
    pool = await get_pool()

    migration_files = sorted(migrations_dir.glob("*.sql"))
    if not migration_files:
        logger.warning("no_migrations_found", path=str(migrations_dir))
        return

    async with pool.acquire() as conn:
        for migration_file in migration_files:
            try:
                await conn.execute(migration_file.read_text(encoding="utf-8"))
                logger.info("migration_applied", file=migration_file.name)
            except Exception as e:
                logger.error(
                    "migration_failed",
                    file=migration_file.name,
                    error=str(e),
                )
                raise


async def health_check() -> bool:
    """Check database connectivity."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1")
            return result == 1
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False

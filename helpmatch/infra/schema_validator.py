# helpmatch/infra/schema_validator.py
"""
Schema version validator.

The application does NOT run migrations itself:
1. Migrations run separately (``python -m helpmatch.infra.migrate``)
2. On startup the application checks the latest applied migration
3. Startup fails if the schema is missing or at a different version
"""
from __future__ import annotations
from helpmatch.config import settings
from helpmatch.infra.db_async import db_conn
from helpmatch.infra.logging_config import get_logger

logger = get_logger(__name__)

_MIGRATE_HINT = "Run migrations first: python -m helpmatch.infra.migrate"


async def validate_schema_version() -> dict:
    """
    Validate that database schema version matches expected version.

    Returns:
        dict with keys ok, current_version, expected_version

    Raises:
        RuntimeError: If schema is missing or at another version
    """
    async with db_conn() as conn:
        table_exists = await conn.fetchval(
            """
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public'
                AND table_name = 'schema_migrations'
            )
            """
        )

        if not table_exists:
            error = f"Schema migrations table not found. {_MIGRATE_HINT}"
            logger.critical(error)
            raise RuntimeError(error)

        current_version = await conn.fetchval(
            "SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1"
        )

    if current_version is None:
        error = f"No migrations have been applied. {_MIGRATE_HINT}"
        logger.critical(error)
        raise RuntimeError(error)

    if current_version != settings.expected_schema_version:
        error = (
            f"Schema version mismatch! "
            f"Expected: {settings.expected_schema_version}, "
            f"Found: {current_version}. {_MIGRATE_HINT}"
        )
        logger.critical(error)
        raise RuntimeError(error)

    return {
        "ok": True,
        "current_version": current_version,
        "expected_version": settings.expected_schema_version,
    }

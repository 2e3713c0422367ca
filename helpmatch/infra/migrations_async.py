# helpmatch/infra/migrations_async.py
"""
Forward-only SQL migrations.

Files in ``helpmatch/infra/sql`` named ``NNN_description.sql`` run in file
name order. Each applied file name is stored in ``schema_migrations``; the
latest one is what ``schema_validator`` compares against
``expected_schema_version``.
"""
from __future__ import annotations

from pathlib import Path

from helpmatch.infra.db_async import db_conn
from helpmatch.infra.logging_config import get_logger

logger = get_logger(__name__)

SQL_DIR = Path(__file__).resolve().parent / "sql"

_CREATE_TRACKING_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations(
  version text PRIMARY KEY,
  applied_at timestamptz NOT NULL DEFAULT now()
)
"""


def migration_files(sql_dir: Path = SQL_DIR) -> list[Path]:
    return sorted(p for p in sql_dir.glob("*.sql") if p.is_file())


def pending_migrations(applied: set[str], sql_dir: Path = SQL_DIR) -> list[Path]:
    """Migration files whose name is not in ``applied``, in run order."""
    return [p for p in migration_files(sql_dir) if p.name not in applied]


async def apply_migrations(dry_run: bool = False) -> dict:
    """
    Apply every pending migration inside one transaction.

    A failing file rolls back the whole run, so the schema never ends up
    between two versions.

    Returns:
        dict with keys ok, applied (file names), count, dry_run
    """
    async with db_conn(autocommit=False) as conn:
        await conn.execute(_CREATE_TRACKING_TABLE)
        applied = {row["version"] for row in await conn.fetch("SELECT version FROM schema_migrations")}
        pending = pending_migrations(applied)

        if dry_run:
            names = [p.name for p in pending]
            logger.info(f"Dry run: {len(names)} migration(s) pending: {names}")
            return {"ok": True, "applied": names, "count": len(names), "dry_run": True}

        for path in pending:
            logger.info(f"Applying migration: {path.name}")
            await conn.execute(path.read_text(encoding="utf-8"))
            await conn.execute("INSERT INTO schema_migrations(version) VALUES ($1)", path.name)

    names = [p.name for p in pending]
    logger.info(f"Migrations complete: {len(names)} applied")
    return {"ok": True, "applied": names, "count": len(names), "dry_run": False}

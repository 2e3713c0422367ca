#!/usr/bin/env python3
# helpmatch/infra/migrate.py
"""
Standalone migration runner. The application validates the schema version
at startup but never migrates.

    python -m helpmatch.infra.migrate            # apply pending migrations
    python -m helpmatch.infra.migrate --dry-run  # list what would run
"""
import argparse
import asyncio
import sys

from helpmatch.config import settings
from helpmatch.infra.db_async import close_pool, init_pool
from helpmatch.infra.logging_config import get_logger, setup_logging
from helpmatch.infra.migrations_async import apply_migrations

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply helpmatch SQL migrations")
    parser.add_argument("--dry-run", action="store_true", help="list pending migrations without applying them")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(level="INFO", use_json=False)
    logger.info(
        f"Migrating env={settings.app_env} database={settings.pghost}:{settings.pgport}/{settings.pgdatabase}"
    )

    try:
        await init_pool()
        result = await apply_migrations(dry_run=args.dry_run)
    except Exception as exc:
        logger.critical(f"MIGRATION FAILED: {exc}", exc_info=True)
        return 1
    finally:
        await close_pool()

    verb = "pending" if result["dry_run"] else "applied"
    for name in result["applied"]:
        logger.info(f"  {verb} {name}")
    logger.info(f"Migrations {verb}: {result['count']}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

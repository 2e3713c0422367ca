# helpmatch/infra/pg_stats_repo_async.py
"""Public activity counters (askForHelp, offerHelp, regionSubscribed)."""
from __future__ import annotations

from helpmatch.infra.db_resilience_async import safe_db_conn


class AsyncPostgresStatsRepository:

    async def increment(self, name: str, scope: str = "external") -> None:
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                INSERT INTO stats (scope, name, value)
                VALUES ($1, $2, 1)
                ON CONFLICT (scope, name)
                DO UPDATE SET value = stats.value + 1
                """,
                scope,
                name,
            )

    async def get_all(self, scope: str = "external") -> dict[str, int]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                "SELECT name, value FROM stats WHERE scope = $1 ORDER BY name",
                scope,
            )
            return {row["name"]: row["value"] for row in rows}


# Global singleton
_stats_repo: AsyncPostgresStatsRepository | None = None


def get_stats_repo() -> AsyncPostgresStatsRepository:
    """Get the global stats repository instance."""
    global _stats_repo
    if _stats_repo is None:
        _stats_repo = AsyncPostgresStatsRepository()
    return _stats_repo

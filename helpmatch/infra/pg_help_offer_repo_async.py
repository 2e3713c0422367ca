# helpmatch/infra/pg_help_offer_repo_async.py
"""
Async PostgreSQL help offer repository (asyncpg).

Offers are read-only for the notification pipeline; the bucket query is a
bytewise (COLLATE "C") range scan over postal codes.
"""
from __future__ import annotations

import uuid

from helpmatch.core.matching.domain import HelpOffer
from helpmatch.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from helpmatch.infra.logging_config import get_logger

logger = get_logger(__name__)


def _row_to_offer(row) -> HelpOffer:
    return HelpOffer(
        id=str(row["id"]),
        helper_id=row["helper_id"],
        postal_code=row["postal_code"],
        reply_email=row["reply_email"],
    )


class AsyncPostgresHelpOfferRepository:

    @retry_on_transient_error(max_retries=2)
    async def find_in_postal_range(self, start: str, end: str) -> list[HelpOffer]:
        """Offers with ``start <= postal_code <= end``, ordered by postal code."""
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                """
                SELECT id, helper_id, postal_code, reply_email
                FROM help_offers
                WHERE postal_code COLLATE "C" >= $1
                  AND postal_code COLLATE "C" <= $2
                ORDER BY postal_code COLLATE "C", created_at
                """,
                start,
                end,
            )
            return [_row_to_offer(row) for row in rows]

    async def create(
        self,
        helper_id: str,
        postal_code: str,
        reply_email: str | None = None,
    ) -> HelpOffer:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO help_offers (id, helper_id, postal_code, reply_email)
                VALUES ($1, $2, $3, $4)
                RETURNING id, helper_id, postal_code, reply_email
                """,
                str(uuid.uuid4()),
                helper_id,
                postal_code,
                reply_email,
            )
            offer = _row_to_offer(row)
            logger.info(
                f"Help offer created: id={offer.id[:8]}, postal_code={postal_code}",
                extra={"helper_id": helper_id},
            )
            return offer


# Global singleton
_help_offer_repo: AsyncPostgresHelpOfferRepository | None = None


def get_help_offer_repo() -> AsyncPostgresHelpOfferRepository:
    """Get the global help offer repository instance."""
    global _help_offer_repo
    if _help_offer_repo is None:
        _help_offer_repo = AsyncPostgresHelpOfferRepository()
    return _help_offer_repo

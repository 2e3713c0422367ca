# helpmatch/infra/pg_account_directory_async.py
"""
Account directory: resolves helper and requester ids to contact emails.
"""
from __future__ import annotations

from helpmatch.core.matching.errors import HelperNotFoundError
from helpmatch.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from helpmatch.infra.logging_config import get_logger, mask_email

logger = get_logger(__name__)


class AsyncPostgresAccountDirectory:

    @retry_on_transient_error(max_retries=2)
    async def resolve_email(self, account_id: str) -> str:
        """
        Contact email for ``account_id``.

        Raises:
            HelperNotFoundError: no account, or the account has no email
        """
        async with safe_db_conn() as conn:
            email = await conn.fetchval(
                "SELECT email FROM accounts WHERE account_id = $1",
                account_id,
            )
        if not email:
            raise HelperNotFoundError(account_id)
        return email

    async def upsert(self, account_id: str, email: str) -> None:
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                INSERT INTO accounts (account_id, email)
                VALUES ($1, $2)
                ON CONFLICT (account_id)
                DO UPDATE SET email = EXCLUDED.email, updated_at = now()
                """,
                account_id,
                email,
            )
        logger.debug(f"Account upserted: id={account_id[:8]}, email={mask_email(email)}")


# Global singleton
_account_directory: AsyncPostgresAccountDirectory | None = None


def get_account_directory() -> AsyncPostgresAccountDirectory:
    """Get the global account directory instance."""
    global _account_directory
    if _account_directory is None:
        _account_directory = AsyncPostgresAccountDirectory()
    return _account_directory

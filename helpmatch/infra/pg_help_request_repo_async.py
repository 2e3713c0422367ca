# helpmatch/infra/pg_help_request_repo_async.py
"""
Async PostgreSQL help request repository (asyncpg).

Scheduler side: select/claim/release/record with compare-and-swap on
``notification_count = 0`` so that a request is processed at most once
even when two scheduler invocations overlap.
Intake side: create, lookup, reply counter, report flag.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from helpmatch.core.matching.domain import HelpRequest
from helpmatch.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from helpmatch.infra.logging_config import get_logger
from helpmatch.infra.metrics import inc_counter

logger = get_logger(__name__)

_LEASE_FREE = "(claimed_at IS NULL OR claimed_at < now() - make_interval(secs => {param}))"


def _row_to_request(row) -> HelpRequest:
    """Convert an asyncpg Record to a HelpRequest dataclass."""
    return HelpRequest(
        id=str(row["id"]),
        requester_id=row["requester_id"],
        postal_code=row["postal_code"],
        created_at=row["created_at"],
        notification_count=row["notification_count"],
        notified_helper_ids=set(row["notified_helper_ids"] or []),
        request_text=row["request_text"] or "",
        location=row["location"] or "",
        responses=row["responses"],
        reported_by=set(row["reported_by"] or []),
    )


def _affected(status: str | None) -> int:
    """Row count from an asyncpg command tag like 'UPDATE 1'."""
    return int(status.split()[-1]) if status else 0


class AsyncPostgresHelpRequestRepository:
    """Help request storage with claim/release semantics for the scheduler."""

    @retry_on_transient_error(max_retries=2)
    async def select_eligible(
        self,
        cutoff: datetime,
        limit: int,
        lease_seconds: int,
    ) -> list[HelpRequest]:
        """
        Unnotified requests created at or before ``cutoff`` that nobody holds.

        Returns at most ``limit`` requests, oldest first.
        """
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"""
                SELECT * FROM help_requests
                WHERE created_at <= $1
                  AND notification_count = 0
                  AND {_LEASE_FREE.format(param="$3")}
                ORDER BY created_at
                LIMIT $2
                """,
                cutoff,
                limit,
                float(lease_seconds),
            )
            return [_row_to_request(row) for row in rows]

    async def claim(self, request_id: str, lease_seconds: int) -> bool:
        """
        Take the processing lease on an unnotified request.

        Single conditional UPDATE: succeeds for exactly one caller while
        the request is unnotified and not held by a live lease.
        """
        async with safe_db_conn() as conn:
            claimed = await conn.fetchval(
                f"""
                UPDATE help_requests
                SET claimed_at = now()
                WHERE id = $1
                  AND notification_count = 0
                  AND {_LEASE_FREE.format(param="$2")}
                RETURNING id
                """,
                request_id,
                float(lease_seconds),
            )
            if claimed is None:
                inc_counter("help_request_claims_lost")
                return False
            return True

    async def release(self, request_id: str) -> None:
        """Drop the lease so the request is eligible on the next tick."""
        async with safe_db_conn() as conn:
            await conn.execute(
                "UPDATE help_requests SET claimed_at = NULL WHERE id = $1",
                request_id,
            )

    async def record_notification(self, request_id: str, helper_id: str) -> None:
        """Count one successful notification and add the helper to the notified set."""
        async with safe_db_conn() as conn:
            status = await conn.execute(
                """
                UPDATE help_requests
                SET
                  notification_count = notification_count + 1,
                  notified_helper_ids = CASE
                    WHEN $2 = ANY(notified_helper_ids) THEN notified_helper_ids
                    ELSE array_append(notified_helper_ids, $2)
                  END
                WHERE id = $1
                """,
                request_id,
                helper_id,
            )
            if _affected(status) == 0:
                logger.warning(
                    f"Notification recorded for unknown help request {request_id}",
                    extra={"request_id": request_id, "helper_id": helper_id},
                )

    async def create(
        self,
        requester_id: str | None,
        postal_code: str,
        request_text: str,
        location: str,
        request_id: str | None = None,
    ) -> HelpRequest:
        """Insert a new request. ``notification_count`` always starts at 0."""
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO help_requests (id, requester_id, postal_code, request_text, location, notification_count)
                VALUES ($1, $2, $3, $4, $5, 0)
                RETURNING *
                """,
                request_id or str(uuid.uuid4()),
                requester_id,
                postal_code,
                request_text,
                location,
            )
            request = _row_to_request(row)
            logger.info(
                f"Help request created: id={request.id[:8]}",
                extra={"request_id": request.id},
            )
            return request

    async def get(self, request_id: str) -> HelpRequest | None:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM help_requests WHERE id = $1", request_id)
            return _row_to_request(row) if row else None

    async def increment_responses(self, request_id: str) -> bool:
        """Count a forwarded reply. False if the request does not exist."""
        async with safe_db_conn() as conn:
            status = await conn.execute(
                "UPDATE help_requests SET responses = responses + 1 WHERE id = $1",
                request_id,
            )
            return _affected(status) > 0

    async def add_reporter(self, request_id: str, reporter_id: str) -> bool:
        """Flag the request as reported by ``reporter_id`` (set semantics)."""
        async with safe_db_conn() as conn:
            status = await conn.execute(
                """
                UPDATE help_requests
                SET reported_by = CASE
                  WHEN $2 = ANY(reported_by) THEN reported_by
                  ELSE array_append(reported_by, $2)
                END
                WHERE id = $1
                """,
                request_id,
                reporter_id,
            )
            return _affected(status) > 0


# Global singleton
_help_request_repo: AsyncPostgresHelpRequestRepository | None = None


def get_help_request_repo() -> AsyncPostgresHelpRequestRepository:
    """Get the global help request repository instance."""
    global _help_request_repo
    if _help_request_repo is None:
        _help_request_repo = AsyncPostgresHelpRequestRepository()
    return _help_request_repo

# helpmatch/core/matching/ports.py
from __future__ import annotations
from datetime import datetime
from typing import Protocol, Optional
from helpmatch.core.matching.domain import HelpOffer, HelpRequest


class AsyncHelpRequestRepository(Protocol):
    async def select_eligible(self, cutoff: datetime, limit: int, lease_seconds: int) -> list[HelpRequest]:
        """Unclaimed requests with created_at <= cutoff and notification_count == 0."""
        ...

    async def claim(self, request_id: str, lease_seconds: int) -> bool:
        """
        True  => this caller owns the request until the lease expires
        False => already processed or claimed by someone else
        """
        ...

    async def release(self, request_id: str) -> None: ...
    async def record_notification(self, request_id: str, helper_id: str) -> None: ...

    async def create(
        self,
        requester_id: str | None,
        postal_code: str,
        request_text: str,
        location: str,
        request_id: str | None = None,
    ) -> HelpRequest: ...

    async def get(self, request_id: str) -> Optional[HelpRequest]: ...
    async def increment_responses(self, request_id: str) -> bool: ...
    async def add_reporter(self, request_id: str, reporter_id: str) -> bool: ...


class AsyncHelpOfferRepository(Protocol):
    async def find_in_postal_range(self, start: str, end: str) -> list[HelpOffer]: ...
    async def create(self, helper_id: str, postal_code: str, reply_email: str | None = None) -> HelpOffer: ...


class HelperDirectory(Protocol):
    async def resolve_email(self, account_id: str) -> str:
        """Raises HelperNotFoundError when the id is unknown."""
        ...


class MailSender(Protocol):
    async def send(self, to: str, from_: str, subject: str, text: str) -> None:
        """Raises DeliveryError on transport or provider failure."""
        ...


class AsyncStatsRepository(Protocol):
    async def increment(self, name: str, scope: str = "external") -> None: ...

    async def get_all(self, scope: str = "external") -> dict[str, int]: ...

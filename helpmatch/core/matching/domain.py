# helpmatch/core/matching/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


# ============================================================================
# RECORDS
# ============================================================================

@dataclass
class HelpRequest:
    """Someone asking for help near a postal code."""
    id: str
    postal_code: str | None
    created_at: datetime
    requester_id: str | None = None
    notification_count: int = 0
    notified_helper_ids: set[str] = field(default_factory=set)
    request_text: str = ""
    location: str = ""
    responses: int = 0
    reported_by: set[str] = field(default_factory=set)

    @property
    def is_processed(self) -> bool:
        return self.notification_count > 0


@dataclass(frozen=True)
class HelpOffer:
    """A helper's standing offer to help around a postal code. Never mutated."""
    id: str
    helper_id: str
    postal_code: str
    reply_email: str | None = None


@dataclass(frozen=True)
class RankedCandidate:
    offer: HelpOffer
    distance: int


# ============================================================================
# OUTCOMES
# ============================================================================

class RequestStatus(str, Enum):
    NOTIFIED = "notified"
    NO_CANDIDATES = "no_candidates"
    ALL_FAILED = "all_failed"
    INVALID_INPUT = "invalid_input"
    SENDING_DISABLED = "sending_disabled"
    CLAIM_LOST = "claim_lost"
    FAILED = "failed"


@dataclass
class NotificationOutcome:
    """Result of one helper's resolve → send → record unit."""
    helper_id: str
    ok: bool
    reason: str | None = None  # "identity" | "delivery" | "unexpected"
    error: str | None = None


@dataclass
class RequestResult:
    request_id: str
    status: RequestStatus
    candidates: int = 0
    outcomes: list[NotificationOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def notified_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "status": self.status.value,
            "candidates": self.candidates,
            "notified": self.notified_count,
            "failed": [
                {"helper_id": o.helper_id, "reason": o.reason, "error": o.error}
                for o in self.outcomes if not o.ok
            ],
            "error": self.error,
        }


@dataclass
class TickReport:
    tick: int
    started_at: datetime
    selected: int = 0
    results: list[RequestResult] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick": self.tick,
            "started_at": self.started_at.isoformat(),
            "selected": self.selected,
            "results": [r.to_dict() for r in self.results],
            "error": self.error,
        }


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class MatchingConfig:
    """Explicit knobs for the pipeline and scheduler."""
    max_results: int = 30
    minimum_delay: timedelta = timedelta(minutes=20)
    batch_size: int = 3
    interval_seconds: float = 180.0
    claim_lease_seconds: int = 900
    sending_enabled: bool = True
    mail_from: str = "help@example.org"
    public_base_url: str = "https://www.example.org/#"

    @classmethod
    def from_settings(cls, settings) -> "MatchingConfig":
        return cls(
            max_results=settings.max_results,
            minimum_delay=timedelta(minutes=settings.minimum_notification_delay_minutes),
            batch_size=settings.notification_batch_size,
            interval_seconds=settings.schedule_interval_seconds,
            claim_lease_seconds=settings.claim_lease_seconds,
            sending_enabled=settings.sending_enabled,
            mail_from=settings.mail_from,
            public_base_url=settings.public_base_url,
        )

# helpmatch/core/matching/pipeline.py
"""
Per-request notification pipeline.

    candidate query → rank & cap → sample → concurrent fan-out

Each helper's unit of work (resolve email → send → record) runs as its own
task and always returns a tagged ``NotificationOutcome``; one helper's failure
never affects another's. State is written per successful send, with no
rollback when a sibling fails.

Claiming and releasing the request is the scheduler's job, not this module's.
"""
from __future__ import annotations

import asyncio
import random

from helpmatch.core.matching.domain import (
    HelpOffer,
    HelpRequest,
    MatchingConfig,
    NotificationOutcome,
    RequestResult,
    RequestStatus,
)
from helpmatch.core.matching.errors import (
    DeliveryError,
    IdentityResolutionError,
    InputDataError,
)
from helpmatch.core.matching.messages import (
    SENDING_DISABLED_LOG_MESSAGE,
    build_help_needed_email,
)
from helpmatch.core.matching.ports import (
    AsyncHelpOfferRepository,
    AsyncHelpRequestRepository,
    HelperDirectory,
    MailSender,
)
from helpmatch.core.matching.ranking import (
    filter_same_width,
    postal_bucket,
    select_candidates,
    validate_postal_code,
)
from helpmatch.infra.logging_config import LogContext, get_logger, mask_email
from helpmatch.infra.metrics import AppMetrics

logger = get_logger(__name__)


class NotificationPipeline:
    """
    Finds and notifies nearby helpers for one help request at a time.

    Usage:
        pipeline = NotificationPipeline(offers, requests, directory, sender, config)
        result = await pipeline.process(request)
    """

    def __init__(
        self,
        offers: AsyncHelpOfferRepository,
        requests: AsyncHelpRequestRepository,
        directory: HelperDirectory,
        sender: MailSender,
        config: MatchingConfig,
        *,
        rng: random.Random | None = None,
    ):
        self._offers = offers
        self._requests = requests
        self._directory = directory
        self._sender = sender
        self._config = config
        self._rng = rng

    async def find_candidates(self, request: HelpRequest) -> list[HelpOffer]:
        """Offers in the request's postal bucket with the same code width.

        Raises:
            InvalidPostalCodeError: request has no usable postal code
        """
        search = validate_postal_code(request.postal_code)
        start, end = postal_bucket(search)
        offers = await self._offers.find_in_postal_range(start, end)
        return filter_same_width(offers, search)

    def select(self, request: HelpRequest, offers: list[HelpOffer]) -> list[HelpOffer]:
        return select_candidates(
            offers, request.postal_code, self._config.max_results, self._rng,
        )

    async def process(self, request: HelpRequest) -> RequestResult:
        """Run the whole pipeline for one request. Only unexpected errors propagate."""
        log = LogContext(logger, request_id=request.id)

        try:
            offers = await self.find_candidates(request)
        except InputDataError as exc:
            log.warning(f"Skipping help request: {exc}")
            AppMetrics.request_skipped("invalid_input")
            return RequestResult(request.id, RequestStatus.INVALID_INPUT, error=str(exc))

        selected = self.select(request, offers)
        log.info(f"Eligible helpers: {len(selected)} selected of {len(offers)} in bucket")

        if not selected:
            AppMetrics.request_skipped("no_candidates")
            return RequestResult(request.id, RequestStatus.NO_CANDIDATES)

        if not self._config.sending_enabled:
            log.info(SENDING_DISABLED_LOG_MESSAGE)
            AppMetrics.request_skipped("sending_disabled")
            return RequestResult(
                request.id, RequestStatus.SENDING_DISABLED, candidates=len(selected),
            )

        outcomes = await self.notify_all(request, selected)
        result = RequestResult(
            request.id,
            RequestStatus.NOTIFIED if any(o.ok for o in outcomes) else RequestStatus.ALL_FAILED,
            candidates=len(selected),
            outcomes=outcomes,
        )
        log.info(
            f"Notification fan-out done: sent={result.notified_count}, "
            f"failed={len(outcomes) - result.notified_count}",
        )
        return result

    async def notify_all(
        self,
        request: HelpRequest,
        offers: list[HelpOffer],
    ) -> list[NotificationOutcome]:
        """Notify every selected helper concurrently and join."""
        tasks = [self._notify_one(request, offer) for offer in offers]
        return list(await asyncio.gather(*tasks))

    async def _notify_one(self, request: HelpRequest, offer: HelpOffer) -> NotificationOutcome:
        log = LogContext(logger, request_id=request.id, helper_id=offer.helper_id)

        try:
            email = await self._directory.resolve_email(offer.helper_id)
            subject, text = build_help_needed_email(request, self._config.public_base_url)
            await self._sender.send(email, self._config.mail_from, subject, text)
            await self._requests.record_notification(request.id, offer.helper_id)

        except IdentityResolutionError as exc:
            log.warning(f"Helper skipped, identity not resolved: {exc}")
            AppMetrics.notification_failed("identity")
            return NotificationOutcome(offer.helper_id, ok=False, reason="identity", error=str(exc))

        except DeliveryError as exc:
            log.warning(f"Helper skipped, delivery failed: {exc}")
            if exc.errors:
                log.warning(f"Provider errors: {exc.errors}")
            AppMetrics.notification_failed("delivery")
            return NotificationOutcome(offer.helper_id, ok=False, reason="delivery", error=str(exc))

        except Exception as exc:
            log.error(f"Helper notification failed: {exc}", exc_info=True)
            AppMetrics.notification_failed("unexpected")
            return NotificationOutcome(
                offer.helper_id, ok=False, reason="unexpected",
                error=f"{exc.__class__.__name__}: {exc}"[:500],
            )

        log.info(f"Helper notified: to={mask_email(email)}")
        AppMetrics.notification_sent()
        return NotificationOutcome(offer.helper_id, ok=True)

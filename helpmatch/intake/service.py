# helpmatch/intake/service.py
"""
Intake Application Service: single-record operations around the
notification pipeline.

    ask_for_help      → new HelpRequest (notification_count forced to 0)
    subscribe_region  → new HelpOffer
    forward_reply     → email a helper's answer to the requester
    report_post       → add reporter to a request's reported_by set

Each bumps its public stats counter. Stats failures are logged, never
surfaced to the caller.

The transport layer stays thin:
    parse request → call service → map IntakeError → return JSON.
"""
from __future__ import annotations

from helpmatch.config import settings
from helpmatch.core.matching.domain import MatchingConfig
from helpmatch.core.matching.errors import DeliveryError, IdentityResolutionError
from helpmatch.core.matching.messages import SENDING_DISABLED_LOG_MESSAGE, build_reply_email
from helpmatch.core.matching.ports import (
    AsyncHelpOfferRepository,
    AsyncHelpRequestRepository,
    AsyncStatsRepository,
    MailSender,
)
from helpmatch.infra.logging_config import LogContext, get_logger, mask_email
from helpmatch.infra.pg_account_directory_async import (
    AsyncPostgresAccountDirectory,
    get_account_directory,
)
from helpmatch.infra.pg_help_offer_repo_async import get_help_offer_repo
from helpmatch.infra.pg_help_request_repo_async import get_help_request_repo
from helpmatch.infra.pg_stats_repo_async import get_stats_repo
from helpmatch.infra.sendgrid_sender import get_mail_sender
from helpmatch.intake.errors import NotFoundError
from helpmatch.intake.models import (
    CreateHelpOffer,
    CreateHelpRequest,
    CreatedResponse,
    OfferReply,
    OkResponse,
    ReplyResponse,
    ReportPost,
)

logger = get_logger(__name__)

STAT_ASK_FOR_HELP = "askForHelp"
STAT_OFFER_HELP = "offerHelp"
STAT_REGION_SUBSCRIBED = "regionSubscribed"


class IntakeApplicationService:
    """
    Orchestrates intake operations. Stateless: safe to use as a singleton.

    Collaborators default to the global repositories and mail sender.
    """

    def __init__(
        self,
        requests: AsyncHelpRequestRepository | None = None,
        offers: AsyncHelpOfferRepository | None = None,
        accounts: AsyncPostgresAccountDirectory | None = None,
        stats: AsyncStatsRepository | None = None,
        sender: MailSender | None = None,
        config: MatchingConfig | None = None,
    ) -> None:
        self._requests = requests or get_help_request_repo()
        self._offers = offers or get_help_offer_repo()
        self._accounts = accounts or get_account_directory()
        self._stats = stats or get_stats_repo()
        self._sender = sender or get_mail_sender(settings)
        self._config = config or MatchingConfig.from_settings(settings)

    async def ask_for_help(self, req: CreateHelpRequest) -> CreatedResponse:
        if req.email:
            await self._accounts.upsert(req.requester_id, req.email)

        request = await self._requests.create(
            requester_id=req.requester_id,
            postal_code=req.postal_code,
            request_text=req.request_text,
            location=req.location,
        )
        await self._bump(STAT_ASK_FOR_HELP)
        return CreatedResponse(id=request.id)

    async def subscribe_region(self, req: CreateHelpOffer) -> CreatedResponse:
        if req.email:
            await self._accounts.upsert(req.helper_id, req.email)

        offer = await self._offers.create(
            helper_id=req.helper_id,
            postal_code=req.postal_code,
            reply_email=req.reply_email,
        )
        await self._bump(STAT_REGION_SUBSCRIBED)
        return CreatedResponse(id=offer.id)

    async def forward_reply(self, request_id: str, reply: OfferReply) -> ReplyResponse:
        """
        Email a helper's answer to the requester.

        Unknown requester account: nothing is sent or counted.
        Delivery failure or sending disabled: logged, and the reply is still counted.
        """
        log = LogContext(logger, request_id=request_id)

        request = await self._requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Help request '{request_id}' not found")

        if not request.requester_id:
            log.error("Help request has no requester, reply not forwarded")
            return ReplyResponse(forwarded=False)

        try:
            receiver = await self._accounts.resolve_email(request.requester_id)
        except IdentityResolutionError as exc:
            log.error(f"Requester not resolved, reply not forwarded: {exc}")
            return ReplyResponse(forwarded=False)

        subject, text = build_reply_email(request, reply.answer, reply.email)
        forwarded = False
        if not self._config.sending_enabled:
            log.info(SENDING_DISABLED_LOG_MESSAGE)
        else:
            try:
                await self._sender.send(receiver, self._config.mail_from, subject, text)
                forwarded = True
                log.info(f"Reply forwarded: to={mask_email(receiver)}")
            except DeliveryError as exc:
                log.warning(f"Reply delivery failed: {exc}")
                if exc.errors:
                    log.warning(f"Provider errors: {exc.errors}")

        await self._requests.increment_responses(request_id)
        await self._bump(STAT_OFFER_HELP)
        return ReplyResponse(forwarded=forwarded)

    async def report_post(self, req: ReportPost) -> OkResponse:
        if not await self._requests.add_reporter(req.request_id, req.reporter_id):
            raise NotFoundError(f"Help request '{req.request_id}' not found")
        logger.info(
            f"Help request reported: id={req.request_id[:8]}",
            extra={"request_id": req.request_id},
        )
        return OkResponse()

    async def get_stats(self) -> dict[str, int]:
        return await self._stats.get_all()

    async def _bump(self, name: str) -> None:
        try:
            await self._stats.increment(name)
        except Exception as exc:
            logger.warning(f"Stats counter {name} not updated: {exc}")


_intake_service: IntakeApplicationService | None = None


def get_intake_service() -> IntakeApplicationService:
    """Get the global intake service instance."""
    global _intake_service
    if _intake_service is None:
        _intake_service = IntakeApplicationService()
    return _intake_service

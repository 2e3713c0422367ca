# tests/test_intake_service.py
"""
Tests for the intake application service:
- record creation and stats counters
- reply forwarding (delivery failures swallowed)
- reporting
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from helpmatch.core.matching.domain import HelpOffer, MatchingConfig
from helpmatch.core.matching.errors import DeliveryError, HelperNotFoundError
from helpmatch.core.matching.messages import REPLY_SUBJECT
from helpmatch.intake.errors import NotFoundError
from helpmatch.intake.models import CreateHelpOffer, CreateHelpRequest, OfferReply, ReportPost
from helpmatch.intake.service import IntakeApplicationService


@pytest.fixture
def deps(make_request):
    requests = AsyncMock()
    requests.create = AsyncMock(return_value=make_request("new-req"))
    requests.get = AsyncMock(return_value=make_request("req-1"))
    requests.increment_responses = AsyncMock(return_value=True)
    requests.add_reporter = AsyncMock(return_value=True)
    offers = AsyncMock()
    offers.create = AsyncMock(return_value=HelpOffer("new-offer", "helper-1", "04109"))
    accounts = AsyncMock()
    accounts.resolve_email = AsyncMock(return_value="requester@example.org")
    stats = AsyncMock()
    sender = AsyncMock()
    return {
        "requests": requests,
        "offers": offers,
        "accounts": accounts,
        "stats": stats,
        "sender": sender,
        "config": MatchingConfig(mail_from="noreply@example.org"),
    }


@pytest.fixture
def service(deps):
    return IntakeApplicationService(**deps)


class TestAskForHelp:
    @pytest.mark.asyncio
    async def test_creates_request_and_counts(self, service, deps):
        payload = CreateHelpRequest(
            requester_id="requester-1", postal_code="04109",
            request_text="Groceries please", location="Leipzig", email="me@example.org",
        )

        response = await service.ask_for_help(payload)

        assert response.id == "new-req"
        deps["accounts"].upsert.assert_awaited_once_with("requester-1", "me@example.org")
        deps["requests"].create.assert_awaited_once_with(
            requester_id="requester-1", postal_code="04109",
            request_text="Groceries please", location="Leipzig",
        )
        deps["stats"].increment.assert_awaited_once_with("askForHelp")

    @pytest.mark.asyncio
    async def test_stats_failure_does_not_fail_creation(self, service, deps):
        deps["stats"].increment = AsyncMock(side_effect=RuntimeError("db down"))
        payload = CreateHelpRequest(requester_id="r", postal_code="04109", request_text="x")

        response = await service.ask_for_help(payload)

        assert response.id == "new-req"
        deps["accounts"].upsert.assert_not_called()

    def test_postal_code_must_be_digits(self):
        with pytest.raises(ValueError):
            CreateHelpRequest(requester_id="r", postal_code="04l09", request_text="x")


class TestSubscribeRegion:
    @pytest.mark.asyncio
    async def test_creates_offer_and_counts(self, service, deps):
        payload = CreateHelpOffer(helper_id="helper-1", postal_code="04109", reply_email="h@example.org")

        response = await service.subscribe_region(payload)

        assert response.id == "new-offer"
        deps["offers"].create.assert_awaited_once_with(
            helper_id="helper-1", postal_code="04109", reply_email="h@example.org",
        )
        deps["stats"].increment.assert_awaited_once_with("regionSubscribed")


class TestForwardReply:
    @pytest.mark.asyncio
    async def test_forwards_to_requester(self, service, deps):
        reply = OfferReply(answer="I can help on Saturday", email="helper@example.org")

        response = await service.forward_reply("req-1", reply)

        assert response.forwarded is True
        to, from_, subject, text = deps["sender"].send.await_args.args
        assert to == "requester@example.org"
        assert from_ == "noreply@example.org"
        assert subject == REPLY_SUBJECT
        assert "I can help on Saturday" in text
        assert "helper@example.org" in text
        deps["requests"].increment_responses.assert_awaited_once_with("req-1")
        deps["stats"].increment.assert_awaited_once_with("offerHelp")

    @pytest.mark.asyncio
    async def test_delivery_failure_still_counts(self, service, deps):
        deps["sender"].send = AsyncMock(side_effect=DeliveryError(400, "bad", [{"message": "bad"}]))

        response = await service.forward_reply("req-1", OfferReply(answer="hi", email="h@example.org"))

        assert response.forwarded is False
        deps["requests"].increment_responses.assert_awaited_once_with("req-1")
        deps["stats"].increment.assert_awaited_once_with("offerHelp")

    @pytest.mark.asyncio
    async def test_sending_disabled_still_counts(self, deps, caplog):
        deps["config"] = MatchingConfig(mail_from="noreply@example.org", sending_enabled=False)
        service = IntakeApplicationService(**deps)

        with caplog.at_level("INFO"):
            response = await service.forward_reply("req-1", OfferReply(answer="hi", email="h@example.org"))

        assert response.forwarded is False
        deps["sender"].send.assert_not_called()
        deps["requests"].increment_responses.assert_awaited_once_with("req-1")
        deps["stats"].increment.assert_awaited_once_with("offerHelp")
        assert "Sending emails is currently disabled." in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_requester_sends_and_counts_nothing(self, service, deps):
        deps["accounts"].resolve_email = AsyncMock(side_effect=HelperNotFoundError("requester-1"))

        response = await service.forward_reply("req-1", OfferReply(answer="hi", email="h@example.org"))

        assert response.forwarded is False
        deps["sender"].send.assert_not_called()
        deps["requests"].increment_responses.assert_not_called()
        deps["stats"].increment.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_request_is_not_found(self, service, deps):
        deps["requests"].get = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError) as exc_info:
            await service.forward_reply("nope", OfferReply(answer="hi", email="h@example.org"))

        assert exc_info.value.status_code == 404


class TestReportPost:
    @pytest.mark.asyncio
    async def test_report(self, service, deps):
        response = await service.report_post(ReportPost(request_id="req-1", reporter_id="u-2"))

        assert response.ok is True
        deps["requests"].add_reporter.assert_awaited_once_with("req-1", "u-2")

    @pytest.mark.asyncio
    async def test_report_missing_request(self, service, deps):
        deps["requests"].add_reporter = AsyncMock(return_value=False)

        with pytest.raises(NotFoundError):
            await service.report_post(ReportPost(request_id="nope", reporter_id="u-2"))

# tests/test_sendgrid_sender.py
"""Tests for the SendGrid mail sender with a mocked aiohttp session."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from helpmatch.core.matching.errors import DeliveryError
from helpmatch.infra.metrics import get_metrics_collector
from helpmatch.infra.sendgrid_sender import (
    SendGridMailSender,
    build_payload,
    get_mail_sender,
)


def _response(status: int, body=None, json_error: Exception | None = None):
    response = MagicMock()
    response.status = status
    if json_error:
        response.json = AsyncMock(side_effect=json_error)
    else:
        response.json = AsyncMock(return_value=body)
    return response


def _session(response=None, enter_error: Exception | None = None):
    ctx = MagicMock()
    if enter_error:
        ctx.__aenter__ = AsyncMock(side_effect=enter_error)
    else:
        ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.post = MagicMock(return_value=ctx)
    return session


def _sender(session) -> SendGridMailSender:
    return SendGridMailSender(api_key="SG.test", api_url="https://sendgrid.test/v3/mail/send",
                              session_factory=lambda: session)


class TestPayload:
    def test_single_plain_text_message(self):
        payload = build_payload("to@example.org", "from@example.org", "Hi", "Body")
        assert payload == {
            "personalizations": [{"to": [{"email": "to@example.org"}]}],
            "from": {"email": "from@example.org"},
            "subject": "Hi",
            "content": [{"type": "text/plain", "value": "Body"}],
        }


class TestSendGridMailSender:
    @pytest.mark.asyncio
    async def test_accepted(self):
        session = _session(_response(202))

        await _sender(session).send("to@example.org", "from@example.org", "Hi", "Body")

        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url == "https://sendgrid.test/v3/mail/send"
        assert kwargs["headers"] == {"Authorization": "Bearer SG.test"}
        assert kwargs["json"]["subject"] == "Hi"
        assert get_metrics_collector().get_counter("mail_outbound_sent") == 1

    @pytest.mark.asyncio
    async def test_rejected_carries_provider_errors(self):
        errors = [
            {"message": "The to email does not contain a valid address.", "field": "personalizations.0.to.0.email"},
            {"message": "Second problem", "field": None},
        ]
        session = _session(_response(400, {"errors": errors}))

        with pytest.raises(DeliveryError) as exc_info:
            await _sender(session).send("bad", "from@example.org", "Hi", "Body")

        assert exc_info.value.status == 400
        assert exc_info.value.errors == errors
        assert "valid address" in str(exc_info.value)
        assert "Second problem" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rejected_with_non_json_body(self):
        session = _session(_response(500, json_error=ValueError("not json")))

        with pytest.raises(DeliveryError) as exc_info:
            await _sender(session).send("to@example.org", "from@example.org", "Hi", "Body")

        assert exc_info.value.status == 500
        assert exc_info.value.errors == []
        assert "Unknown error" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        session = _session(enter_error=aiohttp.ClientError("Connection refused"))

        with pytest.raises(DeliveryError) as exc_info:
            await _sender(session).send("to@example.org", "from@example.org", "Hi", "Body")

        assert exc_info.value.status == 0

    @pytest.mark.asyncio
    async def test_timeout(self):
        session = _session(enter_error=asyncio.TimeoutError())

        with pytest.raises(DeliveryError) as exc_info:
            await _sender(session).send("to@example.org", "from@example.org", "Hi", "Body")

        assert exc_info.value.status == 0
        assert get_metrics_collector().get_counter("mail_outbound_connection_error") == 1


class TestSenderSelection:
    def test_built_from_settings(self):
        cfg = SimpleNamespace(sendgrid_api_key="SG.x", sendgrid_api_url="https://sendgrid.test")
        sender = get_mail_sender(cfg)
        assert isinstance(sender, SendGridMailSender)
        assert sender._api_url == "https://sendgrid.test"

    def test_missing_key_still_builds(self):
        cfg = SimpleNamespace(sendgrid_api_key=None, sendgrid_api_url="https://sendgrid.test")
        assert isinstance(get_mail_sender(cfg), SendGridMailSender)

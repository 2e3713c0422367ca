# helpmatch/infra/sendgrid_sender.py
"""
SendGrid v3 mail sender.

POST /v3/mail/send with a bearer API key; 202 means accepted.

Error handling:
- Non-2xx response → DeliveryError(status, message, errors) where ``errors``
  is the provider's ``{"errors": [{"message", "field", "help"}, ...]}`` list
- Network / timeout → DeliveryError(0, ...)

Nothing is retried here; the pipeline logs the failure and moves on.

HTTP session lifecycle:
- Uses the shared mail session from helpmatch.infra.http_client.
- Call close_sender_session() during application shutdown.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable

import aiohttp

from helpmatch.core.matching.errors import DeliveryError
from helpmatch.infra.http_client import get_sender_session
from helpmatch.infra.logging_config import get_logger, mask_email
from helpmatch.infra.metrics import inc_counter

logger = get_logger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


def build_payload(to: str, from_: str, subject: str, text: str) -> dict[str, Any]:
    """SendGrid v3 request body for a single plain-text message."""
    return {
        "personalizations": [{"to": [{"email": to}]}],
        "from": {"email": from_},
        "subject": subject,
        "content": [{"type": "text/plain", "value": text}],
    }


async def _safe_response_json(resp: aiohttp.ClientResponse) -> dict | None:
    """Parse JSON from response, returning None if body is not valid JSON."""
    try:
        return await resp.json(content_type=None)
    except Exception:
        logger.warning(f"SendGrid returned non-JSON body: status={resp.status}")
        return None


class SendGridMailSender:
    """
    MailSender backed by the SendGrid v3 API.

    Usage:
        sender = SendGridMailSender(api_key=settings.sendgrid_api_key)
        await sender.send("helper@example.org", "help@example.org", "Subject", "Body")
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = SENDGRID_API_URL,
        session_factory: Callable[[], aiohttp.ClientSession] = get_sender_session,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._session_factory = session_factory

    async def send(self, to: str, from_: str, subject: str, text: str) -> None:
        """
        Send one plain-text email.

        Raises:
            DeliveryError: provider rejected the message or was unreachable
        """
        headers = {"Authorization": f"Bearer {self._api_key}"}
        payload = build_payload(to, from_, subject, text)

        try:
            session = self._session_factory()
            async with session.post(self._api_url, json=payload, headers=headers) as resp:
                if 200 <= resp.status < 300:
                    logger.debug(f"SendGrid accepted message: to={mask_email(to)}, status={resp.status}")
                    inc_counter("mail_outbound_sent")
                    return

                body = await _safe_response_json(resp)
                errors = (body or {}).get("errors") or []
                message = "; ".join(e.get("message", "") for e in errors if isinstance(e, dict)) or "Unknown error"

                logger.warning(
                    f"SendGrid rejected message: status={resp.status}, to={mask_email(to)}, errors={errors}",
                )
                inc_counter("mail_outbound_rejected", status=resp.status)
                raise DeliveryError(resp.status, message, errors)

        except DeliveryError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(f"SendGrid connection error: {exc!r}")
            inc_counter("mail_outbound_connection_error")
            raise DeliveryError(0, repr(exc)) from exc


def get_mail_sender(settings) -> SendGridMailSender:
    """SendGrid sender built from settings.

    Callers check ``sending_enabled`` first; with sending off this sender is
    never reached.
    """
    return SendGridMailSender(api_key=settings.sendgrid_api_key or "", api_url=settings.sendgrid_api_url)

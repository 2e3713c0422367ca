# helpmatch/core/matching/messages.py
"""Plain-text email bodies sent to helpers and requesters."""
from __future__ import annotations

from helpmatch.core.matching.domain import HelpRequest

HELP_NEEDED_SUBJECT = "Someone near you needs your help!"
REPLY_SUBJECT = "Someone replied to your request!"

SENDING_DISABLED_LOG_MESSAGE = "Sending emails is currently disabled."


def offer_help_link(base_url: str, request_id: str) -> str:
    """Reply-flow link for one request: ``<base>/offer-help/<id>``."""
    return f"{base_url.rstrip('/')}/offer-help/{request_id}"


def build_help_needed_email(request: HelpRequest, base_url: str) -> tuple[str, str]:
    """Subject and body notifying a helper about a nearby request."""
    text = (
        "Hello,\n"
        "someone in your area needs your help!\n"
        f"They live in {request.location or 'your area'} and wrote:\n"
        f"\"{request.request_text}\"\n"
        "\n"
        "You can answer the request here:\n"
        f"{offer_help_link(base_url, request.id)}"
    )
    return HELP_NEEDED_SUBJECT, text


def build_reply_email(request: HelpRequest, answer: str, reply_email: str) -> tuple[str, str]:
    """Subject and body forwarding a helper's answer to the requester."""
    text = (
        "Hello,\n"
        "someone answered your request:\n"
        f"\"{request.request_text}\"\n"
        "\n"
        "Their message to you:\n"
        f"\"{answer}\"\n"
        "\n"
        "You can reply to them at:\n"
        f"{reply_email}"
    )
    return REPLY_SUBJECT, text

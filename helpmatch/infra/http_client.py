# helpmatch/infra/http_client.py
"""
Shared aiohttp session for outbound mail API calls.

Created lazily on first send and reused for every helper in every tick so
that concurrent fan-out shares one connection pool. Call
``close_sender_session()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from helpmatch.config import settings
from helpmatch.infra.logging_config import get_logger

logger = get_logger(__name__)

# Upper bound on parallel connections to the mail provider
MAIL_CONNECTION_LIMIT = 20

_mail_session: aiohttp.ClientSession | None = None


def get_sender_session() -> aiohttp.ClientSession:
    """The mail session, recreated if it was closed."""
    global _mail_session
    if _mail_session is None or _mail_session.closed:
        _mail_session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=settings.mail_timeout_seconds, connect=5),
            connector=aiohttp.TCPConnector(limit=MAIL_CONNECTION_LIMIT, keepalive_timeout=30),
        )
        logger.debug(f"Mail HTTP session created: limit={MAIL_CONNECTION_LIMIT}")
    return _mail_session


async def close_sender_session() -> None:
    global _mail_session
    session, _mail_session = _mail_session, None
    if session is not None and not session.closed:
        await session.close()
        logger.debug("Mail HTTP session closed")

# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from helpmatch.core.matching.domain import HelpOffer, HelpRequest  # noqa: E402
from helpmatch.infra.metrics import get_metrics_collector  # noqa: E402


@pytest.fixture(autouse=True)
def reset_metrics():
    """Counters are process-global; start every test from zero"""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture
def now():
    return datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_request(now):
    """Factory for HelpRequest records"""
    def _make(request_id: str = "req-1", postal_code: str | None = "04109", **kwargs) -> HelpRequest:
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("requester_id", "requester-1")
        kwargs.setdefault("request_text", "Could someone pick up groceries for me?")
        kwargs.setdefault("location", "Leipzig")
        return HelpRequest(id=request_id, postal_code=postal_code, **kwargs)
    return _make


@pytest.fixture
def make_offer():
    """Factory for HelpOffer records; helper id defaults to the offer id"""
    def _make(offer_id: str, postal_code: str, helper_id: str | None = None) -> HelpOffer:
        return HelpOffer(id=offer_id, helper_id=helper_id or f"helper-{offer_id}", postal_code=postal_code)
    return _make

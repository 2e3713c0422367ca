# helpmatch/core/matching/errors.py
"""
Failure taxonomy for the notification pipeline.

- ``InputDataError``          → skip the whole request (left unprocessed)
- ``IdentityResolutionError`` → skip one helper
- ``DeliveryError``           → skip one helper, no retry in this tick
"""
from __future__ import annotations

from typing import Any


class MatchingError(Exception):
    """Base class for pipeline errors."""


class InputDataError(MatchingError):
    """The help request itself cannot be processed."""


class InvalidPostalCodeError(InputDataError):
    def __init__(self, postal_code: Any):
        self.postal_code = postal_code
        super().__init__(f"Missing or malformed postal code: {postal_code!r}")


class IdentityResolutionError(MatchingError):
    """A helper id could not be turned into a contact address."""


class HelperNotFoundError(IdentityResolutionError):
    def __init__(self, helper_id: str):
        self.helper_id = helper_id
        super().__init__(f"No account for helper {helper_id!r}")


class DeliveryError(MatchingError):
    """Mail provider rejected or failed to accept a message.

    Attributes:
        status: HTTP status code (0 for connection-level errors).
        errors: Provider sub-errors from the response body, as returned.
    """

    def __init__(
        self,
        status: int,
        message: str,
        errors: list[dict[str, Any]] | None = None,
    ):
        self.status = status
        self.errors = errors or []
        super().__init__(f"Mail delivery failed ({status}): {message}")

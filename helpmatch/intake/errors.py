# helpmatch/intake/errors.py
"""
Typed errors for the intake application service.

Each error maps to an HTTP status code. The transport layer catches
``IntakeError`` subtypes and converts them to ``HTTPException``.
"""
from __future__ import annotations


class IntakeError(Exception):
    """Base class for all intake errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class NotFoundError(IntakeError):
    """Referenced help request does not exist (404)."""

    status_code = 404

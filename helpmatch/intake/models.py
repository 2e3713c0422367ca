# helpmatch/intake/models.py
"""
Pydantic request/response models for the intake API.

These live outside the transport layer so the service can validate
payloads without depending on FastAPI.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


def _digits_only(v: str) -> str:
    if not (v.isascii() and v.isdigit()):
        raise ValueError("postal_code must contain digits only")
    return v


class CreateHelpRequest(BaseModel):
    """Ask for help."""

    requester_id: str = Field(..., min_length=1, max_length=128)
    postal_code: str = Field(..., min_length=3, max_length=10)
    request_text: str = Field(..., min_length=1, max_length=2000)
    location: str = Field(default="", max_length=256)
    email: str | None = Field(default=None, max_length=320, description="Requester contact email")

    @field_validator("postal_code")
    @classmethod
    def postal_code_must_be_digits(cls, v: str) -> str:
        return _digits_only(v)


class CreateHelpOffer(BaseModel):
    """Subscribe as a helper for a postal-code region."""

    helper_id: str = Field(..., min_length=1, max_length=128)
    postal_code: str = Field(..., min_length=3, max_length=10)
    email: str | None = Field(default=None, max_length=320, description="Helper contact email")
    reply_email: str | None = Field(default=None, max_length=320)

    @field_validator("postal_code")
    @classmethod
    def postal_code_must_be_digits(cls, v: str) -> str:
        return _digits_only(v)


class OfferReply(BaseModel):
    """A helper's direct answer to one help request."""

    answer: str = Field(..., min_length=1, max_length=4000)
    email: str = Field(..., min_length=3, max_length=320, description="Where the requester can reply")


class ReportPost(BaseModel):
    """Flag a help request as inappropriate."""

    request_id: str = Field(..., min_length=1, max_length=128)
    reporter_id: str = Field(..., min_length=1, max_length=128)


class CreatedResponse(BaseModel):
    id: str


class OkResponse(BaseModel):
    ok: bool = True


class ReplyResponse(BaseModel):
    forwarded: bool

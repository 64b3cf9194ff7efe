"""API-facing Pydantic models."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field


class OutboundCallRequest(BaseModel):
    """Outbound call input, posted as JSON or form data."""

    number: str = Field(default="", description="E.164 destination number; blank is rejected by the route.")
    prompt: str = ""
    first_message: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> OutboundCallRequest:
        def _text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value).strip()

        return cls(number=_text("number"), prompt=_text("prompt"), first_message=_text("first_message"))


class OutboundCallResponse(BaseModel):
    success: bool = True
    message: str = "Call initiated"
    call_sid: str = Field(serialization_alias="callSid")


class StatusResponse(BaseModel):
    message: str

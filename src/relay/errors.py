"""Domain-specific exceptions for relay operations."""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class MalformedFrameError(RelayError, ValueError):
    """A single socket frame could not be decoded; the frame is dropped."""

    default_detail = "Malformed frame."


class AgentConnectionError(RelayError):
    """The agent socket could not be opened or failed while open."""

    default_detail = "Agent connection failed."

"""Per-call relay state machine.

The session never touches a socket. Every input (a telephony frame, an agent
frame, a connection notification) returns the list of effects the caller must
perform, in order. That keeps the transition rules testable with plain event
sequences.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from relay.errors import MalformedFrameError
from relay.events import (
    MediaEvent,
    StartEvent,
    StopEvent,
    decode_json_object,
    media_frame,
    parse_telephony_message,
)
from relay.protocol import AgentEventKind, AgentProtocol

LOGGER = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    CLOSED = "closed"


class LinkState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class ConnectAgent:
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SendAgent:
    command: dict[str, Any]


@dataclass(frozen=True, slots=True)
class SendTelephony:
    frame: dict[str, Any]


@dataclass(frozen=True, slots=True)
class CloseAgent:
    pass


@dataclass(frozen=True, slots=True)
class CloseTelephony:
    pass


Effect = Union[ConnectAgent, SendAgent, SendTelephony, CloseAgent, CloseTelephony]


class Session:
    """Coordinates one telephony stream with one agent link."""

    def __init__(self, protocol: AgentProtocol) -> None:
        self._protocol = protocol
        self.state = SessionState.IDLE
        self.link_state: LinkState | None = None
        self.stream_sid: str | None = None
        self.parameters: dict[str, str] = {}

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    # Telephony side

    def receive_telephony(self, raw: str | bytes) -> list[Effect]:
        if self.closed:
            return []
        try:
            event = parse_telephony_message(raw)
        except MalformedFrameError as exc:
            LOGGER.warning("Dropping telephony frame: %s", exc.detail)
            return []

        if self.state is SessionState.IDLE:
            if isinstance(event, StartEvent):
                return self._start(event)
            LOGGER.debug("Ignoring %s before stream start", type(event).__name__)
            return []

        if isinstance(event, MediaEvent):
            return self._forward_media(event)
        if isinstance(event, StopEvent):
            LOGGER.info("Stream stopped: %s", self.stream_sid)
            return self._teardown(close_telephony=False)
        if isinstance(event, StartEvent):
            LOGGER.warning("Duplicate start for stream %s ignored", self.stream_sid)
        return []

    def telephony_closed(self) -> list[Effect]:
        """The telephony socket closed or failed."""

        if not self.closed:
            LOGGER.info("Telephony socket closed for stream %s", self.stream_sid)
        return self._teardown(close_telephony=False)

    def _start(self, event: StartEvent) -> list[Effect]:
        self.stream_sid = event.stream_sid
        self.parameters = dict(event.parameters)
        self.state = SessionState.ACTIVE
        self.link_state = LinkState.CONNECTING
        LOGGER.info("Stream started: %s parameters=%s", self.stream_sid, sorted(self.parameters))
        return [ConnectAgent(parameters=dict(self.parameters))]

    def _forward_media(self, event: MediaEvent) -> list[Effect]:
        if event.track and event.track != "inbound":
            return []
        if self.link_state is not LinkState.OPEN:
            return []
        return [SendAgent(self._protocol.audio_command(event.payload))]

    # Agent side

    def agent_opened(self) -> list[Effect]:
        if self.state is SessionState.ACTIVE and self.link_state is LinkState.CONNECTING:
            self.link_state = LinkState.OPEN
            LOGGER.info("Agent link open for stream %s", self.stream_sid)
        return []

    def receive_agent(self, raw: str | bytes) -> list[Effect]:
        if self.closed:
            return []
        try:
            message = decode_json_object(raw)
        except MalformedFrameError as exc:
            LOGGER.warning("Dropping agent frame: %s", exc.detail)
            return []

        event = self._protocol.classify(message)
        if event.kind is AgentEventKind.AUDIO:
            if not self.stream_sid:
                return []
            return [SendTelephony(media_frame(self.stream_sid, event.payload or ""))]
        if event.kind is AgentEventKind.ERROR:
            LOGGER.error("Agent error on stream %s: %s", self.stream_sid, event.text)
            return self._teardown(close_telephony=True)
        if event.kind is AgentEventKind.CONVERSATION_TEXT:
            LOGGER.info("Conversation text: %s", event.text)
        elif event.kind is AgentEventKind.THINKING:
            LOGGER.info("Agent thinking...")
        else:
            LOGGER.debug("Unhandled agent event %r", event.tag)
        return []

    def agent_failed(self, reason: str) -> list[Effect]:
        """The agent socket errored; the call cannot continue."""

        if not self.closed:
            LOGGER.error("Agent link failed for stream %s: %s", self.stream_sid, reason)
        return self._teardown(close_telephony=True)

    def agent_closed(self) -> list[Effect]:
        """The agent closed cleanly. The call stays up but audio is no longer relayed."""

        if self.closed or self.link_state is LinkState.CLOSED:
            return []
        LOGGER.info("Agent link closed for stream %s", self.stream_sid)
        self.link_state = LinkState.CLOSED
        return [CloseAgent()]

    def _teardown(self, *, close_telephony: bool) -> list[Effect]:
        if self.closed:
            return []
        self.state = SessionState.CLOSED
        effects: list[Effect] = []
        if self.link_state is not None and self.link_state is not LinkState.CLOSED:
            effects.append(CloseAgent())
        self.link_state = LinkState.CLOSED if self.link_state is not None else None
        if close_telephony:
            effects.append(CloseTelephony())
        return effects

"""Decoding of Twilio Media Streams frames into typed events."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from relay.errors import MalformedFrameError


@dataclass(frozen=True, slots=True)
class StartEvent:
    stream_sid: str
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MediaEvent:
    payload: str
    track: str | None = None


@dataclass(frozen=True, slots=True)
class StopEvent:
    pass


@dataclass(frozen=True, slots=True)
class OtherEvent:
    """Twilio event the relay does not act on (connected, mark, dtmf, ...)."""

    name: str


TelephonyEvent = Union[StartEvent, MediaEvent, StopEvent, OtherEvent]


def decode_json_object(raw: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedFrameError(f"Invalid JSON frame: {exc}") from exc
    if not isinstance(message, dict):
        raise MalformedFrameError("Frame is not a JSON object.")
    return message


def _custom_parameters(start: dict[str, Any]) -> dict[str, str]:
    raw = start.get("customParameters") or {}
    if not isinstance(raw, dict):
        return {}
    return {str(key): str(value) for key, value in raw.items() if value is not None}


def parse_telephony_message(raw: str | bytes) -> TelephonyEvent:
    """Decode one Media Streams text frame.

    Raises ``MalformedFrameError`` when the frame is not JSON or a known event
    lacks the fields the relay depends on.
    """

    message = decode_json_object(raw)
    event = str(message.get("event") or "")

    if event == "start":
        start = message.get("start") or {}
        stream_sid = start.get("streamSid") if isinstance(start, dict) else None
        if not isinstance(stream_sid, str) or not stream_sid:
            raise MalformedFrameError("start event without streamSid")
        return StartEvent(stream_sid=stream_sid, parameters=_custom_parameters(start))

    if event == "media":
        media = message.get("media") or {}
        payload = media.get("payload") if isinstance(media, dict) else None
        if not isinstance(payload, str):
            raise MalformedFrameError("media event without payload")
        return MediaEvent(payload=payload, track=media.get("track"))

    if event == "stop":
        return StopEvent()

    return OtherEvent(name=event)


def media_frame(stream_sid: str, payload: str) -> dict[str, Any]:
    """Outbound Media Streams frame playing ``payload`` on the call."""

    return {"event": "media", "streamSid": stream_sid, "media": {"payload": payload}}

"""Voice-agent wire schemas.

The provider schema has changed between releases (nested ``listen``/``think``/
``speak`` blocks vs. flat ``*_model`` fields, and different audio tags), so each
version is a separate ``AgentProtocol`` picked by configuration. Session and
link code only ever talk to the abstract interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from config.settings import Settings

SAMPLE_RATE_HZ = 8000


class AgentEventKind(str, Enum):
    WELCOME = "welcome"
    SETTINGS_APPLIED = "settings_applied"
    AUDIO = "audio"
    CONVERSATION_TEXT = "conversation_text"
    THINKING = "thinking"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class AgentEvent:
    kind: AgentEventKind
    tag: str
    payload: str | None = None
    text: str | None = None


@dataclass(frozen=True, slots=True)
class AgentProfile:
    """Model choices and fallbacks shared by every call."""

    language: str = "en-US"
    listen_model: str = "nova-2"
    think_model: str = "gpt-4"
    speak_model: str = "aura-2-thalia-en"
    default_prompt: str = "You are a helpful assistant."

    @classmethod
    def from_settings(cls, settings: Settings) -> AgentProfile:
        return cls(
            language=settings.agent_language,
            listen_model=settings.agent_listen_model,
            think_model=settings.agent_think_model,
            speak_model=settings.agent_speak_model,
            default_prompt=settings.agent_default_prompt,
        )


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


class AgentProtocol(ABC):
    """Translation between relay intents and one agent schema version."""

    name: str = ""
    audio_tags: frozenset[str] = frozenset({"AgentAudio"})
    text_tags: frozenset[str] = frozenset({"ConversationText", "Utterance"})

    def __init__(self, profile: AgentProfile | None = None) -> None:
        self.profile = profile or AgentProfile()

    def prompt_for(self, parameters: Mapping[str, str]) -> str:
        return _clean(parameters.get("prompt")) or self.profile.default_prompt

    @staticmethod
    def audio_settings() -> dict[str, Any]:
        return {
            "input": {"encoding": "base64", "sample_rate": SAMPLE_RATE_HZ},
            "output": {"encoding": "base64", "sample_rate": SAMPLE_RATE_HZ},
        }

    @abstractmethod
    def settings_command(self, parameters: Mapping[str, str]) -> dict[str, Any]:
        """Return the one-off configuration sent right after connecting."""

    @abstractmethod
    def greeting_command(self, text: str) -> dict[str, Any]:
        """Return the command making the agent speak ``text`` first."""

    @abstractmethod
    def audio_command(self, payload: str) -> dict[str, Any]:
        """Wrap one base64 caller-audio chunk, unchanged."""

    def initial_commands(self, parameters: Mapping[str, str]) -> list[dict[str, Any]]:
        commands = [self.settings_command(parameters)]
        first_message = _clean(parameters.get("first_message"))
        if first_message:
            commands.append(self.greeting_command(first_message))
        return commands

    @staticmethod
    def keepalive_command() -> dict[str, Any]:
        return {"type": "KeepAlive"}

    def classify(self, message: Mapping[str, Any]) -> AgentEvent:
        tag = str(message.get("type") or "")

        if tag in self.audio_tags:
            audio = message.get("audio")
            payload = audio.get("payload") if isinstance(audio, Mapping) else None
            if isinstance(payload, str) and payload:
                return AgentEvent(AgentEventKind.AUDIO, tag, payload=payload)
            return AgentEvent(AgentEventKind.UNKNOWN, tag)
        if tag in self.text_tags:
            text = message.get("content") or message.get("text")
            return AgentEvent(AgentEventKind.CONVERSATION_TEXT, tag, text=str(text or ""))
        if tag == "AgentThinking":
            return AgentEvent(AgentEventKind.THINKING, tag, text=str(message.get("content") or ""))
        if tag == "Error":
            detail = message.get("message") or message.get("description") or "No error message provided"
            return AgentEvent(AgentEventKind.ERROR, tag, text=str(detail))
        if tag == "Welcome":
            return AgentEvent(AgentEventKind.WELCOME, tag)
        if tag == "SettingsApplied":
            return AgentEvent(AgentEventKind.SETTINGS_APPLIED, tag)
        return AgentEvent(AgentEventKind.UNKNOWN, tag)


class ConverseV1Protocol(AgentProtocol):
    """Current converse API: nested listen/think/speak blocks."""

    name = "v1"

    def settings_command(self, parameters: Mapping[str, str]) -> dict[str, Any]:
        profile = self.profile
        return {
            "type": "Settings",
            "audio": self.audio_settings(),
            "agent": {
                "language": profile.language,
                "listen": {"provider": {"type": "deepgram", "model": profile.listen_model}},
                "think": {"model": profile.think_model, "prompt": self.prompt_for(parameters)},
                "speak": {"model": profile.speak_model},
            },
        }

    def greeting_command(self, text: str) -> dict[str, Any]:
        return {"type": "Utterance", "text": text}

    def audio_command(self, payload: str) -> dict[str, Any]:
        return {"type": "Audio", "audio": {"payload": payload}}


class FlatConverseProtocol(AgentProtocol):
    """Earlier schema with flat ``*_model`` fields and ``Speak`` framing."""

    name = "flat"
    audio_tags = frozenset({"Speak", "AgentAudio"})

    def settings_command(self, parameters: Mapping[str, str]) -> dict[str, Any]:
        profile = self.profile
        return {
            "type": "Settings",
            "audio": self.audio_settings(),
            "agent": {
                "language": profile.language,
                "listen_model": profile.listen_model,
                "think_model": profile.think_model,
                "speak_model": profile.speak_model,
                "instructions": self.prompt_for(parameters),
            },
        }

    def greeting_command(self, text: str) -> dict[str, Any]:
        return {"type": "Speak", "text": text}

    def audio_command(self, payload: str) -> dict[str, Any]:
        return {"type": "Speak", "audio": {"payload": payload}}


PROTOCOLS: dict[str, type[AgentProtocol]] = {
    ConverseV1Protocol.name: ConverseV1Protocol,
    FlatConverseProtocol.name: FlatConverseProtocol,
}


def build_protocol(name: str, profile: AgentProfile | None = None) -> AgentProtocol:
    """Instantiate the agent schema registered under ``name``."""

    try:
        protocol_cls = PROTOCOLS[name]
    except KeyError:
        raise ValueError(f"Unsupported agent protocol: {name}") from None
    return protocol_cls(profile)

from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import Settings


def test_missing_required_credential_fails_fast(monkeypatch):
    monkeypatch.delenv("DEEPGRAM_API_KEY", raising=False)

    with pytest.raises(ValidationError, match="deepgram_api_key"):
        Settings(_env_file=None)


def test_blank_credential_is_rejected(monkeypatch):
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "   ")

    with pytest.raises(ValidationError, match="must not be blank"):
        Settings(_env_file=None)


def test_defaults_match_agent_requirements():
    settings = Settings(_env_file=None)

    assert settings.port == 8000
    assert settings.agent_keepalive_seconds == 20.0
    assert settings.agent_protocol == "v1"
    assert settings.agent_url == "wss://agent.deepgram.com/v1/agent/converse"
    assert settings.agent_default_prompt == "You are a helpful assistant."


def test_port_is_read_from_environment(monkeypatch):
    monkeypatch.setenv("PORT", "9001")
    assert Settings(_env_file=None).port == 9001

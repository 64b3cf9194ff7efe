"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration.

    Loaded once per process and never mutated afterwards. Missing required
    credentials raise a ``ValidationError`` at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio callbacks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # Voice agent provider
    deepgram_api_key: str = Field(description="Static credential sent as 'Authorization: Token <key>'.")
    agent_url: str = Field(default="wss://agent.deepgram.com/v1/agent/converse")
    agent_protocol: Literal["v1", "flat"] = Field(
        default="v1",
        description="Agent schema version used by the protocol translator.",
    )
    agent_keepalive_seconds: float = Field(default=20.0, gt=0)
    agent_language: str = Field(default="en-US")
    agent_listen_model: str = Field(default="nova-2")
    agent_think_model: str = Field(default="gpt-4")
    agent_speak_model: str = Field(default="aura-2-thalia-en")
    agent_default_prompt: str = Field(default="You are a helpful assistant.")

    # Twilio (Voice)
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str = Field(description="E.164 origin number for outbound calls.")

    @field_validator("deepgram_api_key", "twilio_account_sid", "twilio_auth_token", "twilio_phone_number")
    @classmethod
    def ensure_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()

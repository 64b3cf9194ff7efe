"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache, partial

from config.settings import get_settings
from integrations.twilio_client import TwilioConfig, build_twilio_client, get_twilio_config
from relay.agent_link import AgentLink
from relay.bridge import LinkFactory
from relay.protocol import AgentProfile, AgentProtocol, build_protocol


@lru_cache(maxsize=1)
def _twilio_client_factory():
    return build_twilio_client()


def get_twilio_client():
    return _twilio_client_factory()


def get_twilio_cfg() -> TwilioConfig:
    return get_twilio_config()


@lru_cache(maxsize=1)
def get_agent_protocol() -> AgentProtocol:
    settings = get_settings()
    return build_protocol(settings.agent_protocol, AgentProfile.from_settings(settings))


def get_link_factory() -> LinkFactory:
    settings = get_settings()
    return partial(
        AgentLink,
        url=settings.agent_url,
        api_key=settings.deepgram_api_key,
        protocol=get_agent_protocol(),
        keepalive_interval=settings.agent_keepalive_seconds,
    )

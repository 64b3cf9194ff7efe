"""Entry point for the Twilio to voice-agent media relay."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from api.routes import router as api_router
from api.twilio_routes import router as twilio_router
from config.settings import get_settings

# Fails fast when a required credential is missing.
settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Voice Agent Relay",
    description="Bridges Twilio Media Streams with a conversational voice agent.",
)
app.include_router(api_router)
app.include_router(twilio_router)


def main() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

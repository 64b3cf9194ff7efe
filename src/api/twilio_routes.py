"""Twilio Voice integration.

This module provides:
- Outbound call initiation through the Twilio REST API.
- The TwiML document connecting the answered call to the media stream.
- The Media Streams websocket that relays the call to the voice agent.
"""

from __future__ import annotations

import json
import logging
from urllib.parse import quote, urlencode
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Request, Response, WebSocket
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_agent_protocol, get_link_factory, get_twilio_cfg, get_twilio_client
from api.schemas import OutboundCallRequest, OutboundCallResponse
from integrations.twilio_client import TwilioConfig
from relay.bridge import LinkFactory, MediaStreamBridge
from relay.protocol import AgentProtocol
from relay.session import Session

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["twilio"])

MEDIA_STREAM_PATH = "/outbound-media-stream"
TWIML_PATH = "/outbound-call-twiml"

_ATTR_ENTITIES = {'"': "&quot;"}


def _base_url(request: Request, cfg: TwilioConfig) -> str:
    if cfg.public_base_url:
        return cfg.public_base_url
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return f"https://{request.headers.get('host') or request.url.netloc}"


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_response(xml: str) -> Response:
    return Response(content=xml, media_type="text/xml")


def _twiml_connect_stream(*, stream_url: str, parameters: dict[str, str]) -> str:
    stream = escape(stream_url, _ATTR_ENTITIES)
    params = "".join(
        f"<Parameter name=\"{escape(name, _ATTR_ENTITIES)}\" value=\"{escape(value, _ATTR_ENTITIES)}\" />"
        for name, value in parameters.items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\">"
        f"{params}"
        "</Stream>"
        "</Connect>"
        "</Response>"
    )


async def _read_outbound_request(request: Request) -> OutboundCallRequest:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return OutboundCallRequest.from_mapping(form)

    body = await request.body()
    if not body.strip():
        return OutboundCallRequest()
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        LOGGER.warning("Unparseable outbound-call body")
        return OutboundCallRequest()
    if not isinstance(data, dict):
        return OutboundCallRequest()
    return OutboundCallRequest.from_mapping(data)


@router.post("/outbound-call", response_model=OutboundCallResponse)
async def create_outbound_call(
    request: Request,
    twilio_client=Depends(get_twilio_client),
    cfg: TwilioConfig = Depends(get_twilio_cfg),
):
    payload = await _read_outbound_request(request)
    number = payload.number
    if not number:
        return JSONResponse(status_code=400, content={"error": "Phone number is required"})

    query = urlencode(
        {"prompt": payload.prompt, "first_message": payload.first_message},
        quote_via=quote,
    )
    callback_url = f"{_base_url(request, cfg)}{TWIML_PATH}?{query}"

    try:
        call = await run_in_threadpool(
            twilio_client.calls.create,
            to=number,
            from_=cfg.from_number,
            url=callback_url,
            method="POST",
        )
    except Exception:
        LOGGER.exception("Error initiating outbound call to %s", number)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to initiate call"})

    LOGGER.info("Outbound call initiated: %s", call.sid)
    return OutboundCallResponse(call_sid=str(call.sid))


@router.api_route(TWIML_PATH, methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"])
async def outbound_call_twiml(
    request: Request,
    cfg: TwilioConfig = Depends(get_twilio_cfg),
) -> Response:
    parameters = {
        "prompt": request.query_params.get("prompt", ""),
        "first_message": request.query_params.get("first_message", ""),
    }
    stream_url = _to_ws_url(_base_url(request, cfg) + MEDIA_STREAM_PATH)
    return _twiml_response(_twiml_connect_stream(stream_url=stream_url, parameters=parameters))


@router.websocket(MEDIA_STREAM_PATH)
async def outbound_media_stream(
    websocket: WebSocket,
    link_factory: LinkFactory = Depends(get_link_factory),
    protocol: AgentProtocol = Depends(get_agent_protocol),
) -> None:
    await websocket.accept()
    LOGGER.info("Twilio connected to media stream")
    bridge = MediaStreamBridge(websocket, Session(protocol), link_factory)
    await bridge.run()
    LOGGER.info("Media stream finished: %s", bridge.session.stream_sid)

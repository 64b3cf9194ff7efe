from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable, Iterable

from fastapi import WebSocket, WebSocketDisconnect

from relay.agent_link import AgentLink
from relay.errors import AgentConnectionError
from relay.session import (
    CloseAgent,
    CloseTelephony,
    ConnectAgent,
    Effect,
    SendAgent,
    SendTelephony,
    Session,
)

LOGGER = logging.getLogger(__name__)

LinkFactory = Callable[[], AgentLink]


class MediaStreamBridge:
    """Runs one Session against a Twilio socket and its agent link.

    The telephony receive loop runs in the caller's coroutine, the agent
    receive loop in a task. Both feed the same Session on the same event loop
    and execute the effects it returns.
    """

    def __init__(self, websocket: WebSocket, session: Session, link_factory: LinkFactory) -> None:
        self._websocket = websocket
        self._session = session
        self._link_factory = link_factory
        self._link: AgentLink | None = None
        self._agent_task: asyncio.Task | None = None
        self._telephony_open = True

    @property
    def session(self) -> Session:
        return self._session

    async def run(self) -> None:
        try:
            async for message in self._websocket.iter_text():
                await self._apply(self._session.receive_telephony(message))
                if not self._telephony_open:
                    break
        except WebSocketDisconnect:
            pass
        except Exception:
            LOGGER.exception("Telephony socket error on stream %s", self._session.stream_sid)
        finally:
            self._telephony_open = False
            await self._apply(self._session.telephony_closed())
            await self._stop_agent_task()

    async def _run_agent(self, link: AgentLink, parameters: dict[str, str]) -> None:
        try:
            await link.connect(parameters)
            if not link.is_open:
                return
            await self._apply(self._session.agent_opened())
            async for message in link.messages():
                await self._apply(self._session.receive_agent(message))
        except AgentConnectionError as exc:
            await self._apply(self._session.agent_failed(exc.detail))
        except Exception as exc:
            LOGGER.exception("Agent relay failed on stream %s", self._session.stream_sid)
            await self._apply(self._session.agent_failed(f"{type(exc).__name__}: {exc}"))
        else:
            await self._apply(self._session.agent_closed())
        finally:
            await link.close()

    async def _apply(self, effects: Iterable[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, SendAgent):
                if self._link is not None:
                    await self._link.send(effect.command)
            elif isinstance(effect, SendTelephony):
                await self._send_telephony(effect.frame)
            elif isinstance(effect, ConnectAgent):
                self._link = self._link_factory()
                self._agent_task = asyncio.create_task(self._run_agent(self._link, effect.parameters))
            elif isinstance(effect, CloseAgent):
                await self._close_agent()
            elif isinstance(effect, CloseTelephony):
                await self._close_telephony()

    async def _send_telephony(self, frame: dict) -> None:
        if not self._telephony_open:
            return
        try:
            await self._websocket.send_text(json.dumps(frame))
        except (WebSocketDisconnect, RuntimeError, OSError):
            LOGGER.info("Telephony socket gone while sending on stream %s", self._session.stream_sid)
            self._telephony_open = False
            await self._apply(self._session.telephony_closed())

    async def _close_agent(self) -> None:
        if self._link is not None:
            await self._link.close()
        task = self._agent_task
        # close() cannot interrupt a handshake still in flight.
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _close_telephony(self) -> None:
        if not self._telephony_open:
            return
        self._telephony_open = False
        with contextlib.suppress(RuntimeError):
            await self._websocket.close()

    async def _stop_agent_task(self) -> None:
        task = self._agent_task
        if task is None:
            return
        if not task.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from relay.errors import AgentConnectionError
from relay.protocol import AgentProtocol
from relay.session import LinkState

LOGGER = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]


class AgentLink:
    """The single outbound socket from one call to the voice-agent provider.

    Lifecycle: ``connect()`` opens the socket, sends the configuration and
    starts the keepalive task; ``messages()`` yields inbound frames;
    ``close()`` stops the keepalive task before releasing the socket. Commands
    sent while the link is not open are dropped, never queued.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str,
        protocol: AgentProtocol,
        keepalive_interval: float = 20.0,
        connector: Connector = websockets.connect,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._protocol = protocol
        self._keepalive_interval = keepalive_interval
        self._connector = connector
        self._ws: Any = None
        self._keepalive_task: asyncio.Task | None = None
        self.state = LinkState.CONNECTING

    @property
    def is_open(self) -> bool:
        return self.state is LinkState.OPEN

    async def connect(self, parameters: Mapping[str, str]) -> None:
        if self.state is not LinkState.CONNECTING:
            return

        LOGGER.info("Connecting to agent: %s", self._url)
        try:
            ws = await self._connector(
                self._url,
                additional_headers={"Authorization": f"Token {self._api_key}"},
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            self.state = LinkState.CLOSED
            raise AgentConnectionError(f"Could not connect to agent: {exc}") from exc

        if self.state is LinkState.CLOSED:
            # Torn down while the handshake was in flight.
            await ws.close()
            return

        self._ws = ws
        self.state = LinkState.OPEN
        LOGGER.info("Agent connected")

        for command in self._protocol.initial_commands(parameters):
            await self.send(command)
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    async def send(self, command: dict[str, Any]) -> bool:
        if self.state is not LinkState.OPEN or self._ws is None:
            return False
        try:
            await self._ws.send(json.dumps(command))
        except ConnectionClosed:
            LOGGER.debug("Agent socket closed while sending %s", command.get("type"))
            return False
        return True

    async def messages(self) -> AsyncIterator[str | bytes]:
        ws = self._ws
        if ws is None:
            return
        try:
            async for message in ws:
                yield message
        except ConnectionClosedError as exc:
            if self.state is not LinkState.CLOSED:
                raise AgentConnectionError(f"Agent socket closed abnormally: {exc}") from exc
        except OSError as exc:
            if self.state is not LinkState.CLOSED:
                raise AgentConnectionError(f"Agent socket error: {exc}") from exc

    async def close(self) -> None:
        if self.state is LinkState.CLOSED and self._ws is None:
            return
        self.state = LinkState.CLOSED

        task, self._keepalive_task = self._keepalive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(ConnectionClosed, OSError):
                await ws.close()
            LOGGER.info("Agent disconnected")

    async def _keepalive_loop(self) -> None:
        command = self._protocol.keepalive_command()
        while self.state is LinkState.OPEN:
            await asyncio.sleep(self._keepalive_interval)
            if not await self.send(command):
                return

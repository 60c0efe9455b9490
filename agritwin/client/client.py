"""WebSocket client for the twin's real-time server."""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import aiohttp

from .reconnect import ConnectionState, ReconnectPolicy

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]

DEFAULT_SUBSCRIPTIONS: Tuple[Tuple[str, Any], ...] = (
    ("subscribe:sensor-data", None),
    ("subscribe:alerts", None),
)


class TwinClient:
    """Connects to ``/ws``, resubscribes after every connect and
    dispatches incoming events to registered handlers.

    A dropped connection is retried according to the reconnect policy. A
    close initiated by the server ends ``run`` without reconnecting.
    """

    def __init__(
        self,
        url: str,
        policy: Optional[ReconnectPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.policy = policy or ReconnectPolicy()
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._subscriptions: List[Tuple[str, Any]] = list(DEFAULT_SUBSCRIPTIONS)
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self.policy.state

    def on(self, event: str, handler: EventHandler) -> None:
        """Register a handler for a server event. ``"*"`` receives every
        event as ``{"event": ..., "data": ...}``."""
        self._handlers.setdefault(event, []).append(handler)

    def add_subscription(self, event: str, data: Any = None) -> None:
        """Add a subscribe event replayed on every (re)connect."""
        if (event, data) not in self._subscriptions:
            self._subscriptions.append((event, data))

    async def send(self, event: str, data: Any = None) -> None:
        if self._ws is None or self._ws.closed:
            raise ConnectionError("Not connected")
        await self._ws.send_json({"event": event, "data": data})

    async def run(self) -> ConnectionState:
        """Connect and process events until closed, given up, or the server
        closes the connection.

        Returns:
            The final connection state.
        """
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            while not self._closing:
                self.policy.connecting()
                try:
                    self._ws = await self._session.ws_connect(self.url)
                except (aiohttp.ClientError, OSError) as e:
                    delay = self.policy.failed()
                    if delay is None:
                        break
                    logger.warning(f"Connection to {self.url} failed ({e}), retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue

                self.policy.connected()
                logger.info(f"Connected to {self.url}")
                try:
                    for event, data in self._subscriptions:
                        await self.send(event, data)
                except (ConnectionError, aiohttp.ClientError) as e:
                    logger.warning(f"Could not subscribe: {e}")

                server_closed = await self._read_loop(self._ws)
                self.policy.disconnected()
                self._ws = None

                if self._closing:
                    break
                if server_closed:
                    logger.info("Server closed the connection")
                    break
                logger.warning(f"Connection lost, reconnecting in {self.policy.base_delay:.1f}s")
                await asyncio.sleep(self.policy.base_delay)
        finally:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None
        return self.policy.state

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> bool:
        """Dispatch frames until the socket ends.

        Returns:
            True if the server closed the connection with a close frame.
        """
        while True:
            msg = await ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                await self._dispatch(msg.data)
            elif msg.type == aiohttp.WSMsgType.CLOSE:
                return not self._closing
            elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING):
                return False
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning(f"WebSocket error: {ws.exception()}")
                return False

    async def _dispatch(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
            event, data = frame["event"], frame.get("data")
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.warning(f"Ignoring malformed frame: {raw[:100]}")
            return

        calls = [(handler, data) for handler in self._handlers.get(event, [])]
        calls += [(handler, frame) for handler in self._handlers.get("*", [])]
        for handler, argument in calls:
            try:
                result = handler(argument)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(f"Handler for {event} failed")

    async def close(self) -> None:
        """Close the connection; ``run`` returns without reconnecting."""
        self._closing = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

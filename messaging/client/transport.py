import asyncio
import inspect
import json
import logging
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from pydantic import ValidationError as PydanticValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from messaging.client.credentials import CredentialsProvider
from messaging.schemas.events import TransportEvent

logger = logging.getLogger(__name__)


class TransportState(str, Enum):

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class Signal(str, Enum):

    CONNECT = "connect"
    OPENED = "opened"
    LOST = "lost"
    CLOSE = "close"


_TRANSITIONS = {
    (TransportState.IDLE, Signal.CONNECT): TransportState.CONNECTING,
    (TransportState.DISCONNECTED, Signal.CONNECT): TransportState.CONNECTING,
    (TransportState.CONNECTING, Signal.OPENED): TransportState.CONNECTED,
    (TransportState.CONNECTING, Signal.LOST): TransportState.DISCONNECTED,
    (TransportState.CONNECTED, Signal.LOST): TransportState.DISCONNECTED,
}


def transition(state: TransportState, signal: Signal) -> TransportState:
    """Next state for ``signal``; signals that make no sense in ``state`` leave it unchanged."""
    if state is TransportState.CLOSED or signal is Signal.CLOSE:
        return TransportState.CLOSED
    return _TRANSITIONS.get((state, signal), state)


class ReconnectPolicy(Protocol):

    def delay(self, attempt: int) -> float:
        ...


class FixedDelay:

    def __init__(self, seconds: float = 2.0) -> None:
        self.seconds = seconds

    def delay(self, attempt: int) -> float:
        return self.seconds


class ExponentialBackoff:

    def __init__(self, base: float = 1.0, cap: float = 30.0, jitter: float = 0.1) -> None:
        self.base = base
        self.cap = cap
        self.jitter = jitter

    def delay(self, attempt: int) -> float:
        # 2.0 ** 1024 overflows
        raw = min(self.cap, self.base * (2 ** min(attempt, 32)))
        if self.jitter:
            raw += random.uniform(0, raw * self.jitter)
        return min(raw, self.cap)


Connector = Callable[[str], Awaitable[Any]]
EventHandler = Callable[[TransportEvent], Union[None, Awaitable[None]]]
StatusHandler = Callable[[str], None]


async def websocket_connector(url: str):
    return await websockets.connect(url)


class TransportClient:

    def __init__(
        self,
        url: str,
        credentials: CredentialsProvider,
        on_event: EventHandler,
        on_status: Optional[StatusHandler] = None,
        policy: Optional[ReconnectPolicy] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self._url = url
        self._credentials = credentials
        self._on_event = on_event
        self._on_status = on_status
        self._policy = policy or FixedDelay(2.0)
        self._connector = connector or websocket_connector
        self._state = TransportState.IDLE
        self._conn = None
        self._reader: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending_connect: Optional[asyncio.Task] = None
        self._dialing = False
        self._attempts = 0

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    def _signal(self, signal: Signal) -> None:
        new_state = transition(self._state, signal)
        if new_state is not self._state:
            logger.debug("transport %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _emit_status(self, status: str) -> None:
        if self._on_status is not None:
            self._on_status(status)

    def _url_with_token(self, token: str) -> str:
        parts = urlsplit(self._url)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != "token"]
        query.append(("token", token))
        return urlunsplit(parts._replace(query=urlencode(query)))

    async def connect(self) -> None:
        if self._dialing or self._state in (TransportState.CONNECTING, TransportState.CONNECTED, TransportState.CLOSED):
            return
        self._dialing = True
        try:
            await self._dial()
        finally:
            self._dialing = False

    async def _dial(self) -> None:
        token = await self._credentials.get_token()
        if not token or self._state is TransportState.CLOSED:
            return
        self._clear_timer()
        self._signal(Signal.CONNECT)
        try:
            conn = await self._connector(self._url_with_token(token))
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            logger.debug("transport connect failed: %s", exc)
            if self._state is TransportState.CLOSED:
                return
            self._emit_status("error")
            self._lost()
            return
        if self._state is TransportState.CLOSED:
            # disconnect() won the race while we were dialing
            await conn.close()
            return
        self._conn = conn
        self._attempts = 0
        self._signal(Signal.OPENED)
        self._emit_status("connected")
        self._reader = asyncio.create_task(self._read_loop(conn))

    async def _read_loop(self, conn) -> None:
        failed = False
        try:
            async for raw in conn:
                await self._dispatch(raw)
        except ConnectionClosedOK:
            pass
        except (ConnectionClosed, OSError) as exc:
            logger.debug("transport connection dropped: %s", exc)
            failed = True
        if self._conn is conn:
            self._conn = None
        if self._state is TransportState.CLOSED:
            return
        if failed:
            self._emit_status("error")
        self._emit_status("disconnected")
        self._lost()

    async def _dispatch(self, raw: Any) -> None:
        try:
            event = TransportEvent.model_validate_json(raw)
        except PydanticValidationError:
            logger.debug("Dropping malformed transport frame")
            return
        try:
            result = self._on_event(event)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.warning("transport event handler failed on %s: %s", event.type, exc)

    def _lost(self) -> None:
        self._signal(Signal.LOST)
        self._schedule_reconnect()

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_reconnect(self) -> None:
        self._clear_timer()
        delay = self._policy.delay(self._attempts)
        self._attempts += 1
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._state is TransportState.CLOSED:
            return
        self._pending_connect = asyncio.ensure_future(self.connect())

    async def send(self, event: Union[TransportEvent, Dict[str, Any]]) -> bool:
        """Send one frame if connected. Frames sent while offline are dropped, not queued."""
        conn = self._conn
        if self._state is not TransportState.CONNECTED or conn is None:
            logger.debug("transport not connected; dropping outbound frame")
            return False
        payload = event.to_json() if isinstance(event, TransportEvent) else json.dumps(event)
        try:
            await conn.send(payload)
        except ConnectionClosed as exc:
            logger.debug("transport send failed: %s", exc)
            return False
        return True

    async def disconnect(self) -> None:
        was_connected = self._state is TransportState.CONNECTED
        self._signal(Signal.CLOSE)
        self._clear_timer()
        pending = self._pending_connect
        self._pending_connect = None
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            pending.cancel()
        conn = self._conn
        self._conn = None
        if conn is not None:
            await conn.close()
        reader = self._reader
        self._reader = None
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
        if was_connected:
            self._emit_status("disconnected")

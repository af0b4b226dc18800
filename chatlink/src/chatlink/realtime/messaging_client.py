"""
Realtime messaging client.

The client owns at most one websocket connection to the chat endpoint.
Its lifecycle is ``IDLE -> CONNECTING -> OPEN -> CLOSING -> CLOSED``;
``CLOSED`` is terminal for an instance and a fresh instance must be
created afterwards (see ``registry.py``).

Incoming frames are delivered to a single subscriber.  Registering a new
subscriber replaces the previous one (last registration wins); frames
are delivered one at a time in the order they arrive on the wire.
Outgoing frames are queued and written by a single writer task, so they
go out in call order and ``send_message`` returns without waiting for
the write.  ``send_message`` never raises: when the connection is not
open the frame is dropped and a warning is logged.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from .. import telemetry

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], Union[None, Awaitable[None]]]
Connector = Callable[[str], Awaitable[Any]]

# Failures worth another connection attempt
_RETRYABLE_OPEN_ERRORS = (OSError, asyncio.TimeoutError, InvalidHandshake)


class ConnectionState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Subscription:
    """Handle returned by ``RealtimeMessagingClient.on_message``."""

    def __init__(self, client: "RealtimeMessagingClient", callback: MessageCallback) -> None:
        self._client = client
        self.callback = callback

    @property
    def active(self) -> bool:
        return self._client._subscription is self

    def unsubscribe(self) -> None:
        """Stop delivery to this callback if it is still the active one."""
        if self.active:
            self._client._subscription = None


class RealtimeMessagingClient:
    """Owner of the single websocket connection to the chat endpoint.

    Args:
        url: Websocket endpoint.
        connector: Coroutine function opening a connection; defaults to
            ``websockets.connect``.
        connect_attempts: Attempts made by ``connect()`` before giving up.
        retry_wait: Base delay in seconds for exponential backoff between
            attempts.
    """

    def __init__(
        self,
        url: str,
        *,
        connector: Optional[Connector] = None,
        connect_attempts: int = 3,
        retry_wait: float = 1.0,
    ) -> None:
        self.url = url
        self._connector: Connector = connector or websockets.connect
        self.connect_attempts = max(1, connect_attempts)
        self.retry_wait = retry_wait
        self.state = ConnectionState.IDLE
        self._ws: Any = None
        self._opening: Optional["asyncio.Future[bool]"] = None
        self._subscription: Optional[Subscription] = None
        self._outbox: "asyncio.Queue[str]" = asyncio.Queue()
        self._reader: Optional[asyncio.Task] = None
        self._writer: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    @property
    def has_subscriber(self) -> bool:
        return self._subscription is not None

    async def connect(self) -> bool:
        """Open the connection if none exists.

        Returns ``True`` once the connection is open.  Calling this while
        already open is a no-op; calling it while an open is pending waits
        for that same attempt.  Failures are logged and reported as
        ``False``.
        """
        if self.state is ConnectionState.OPEN:
            return True
        if self._opening is not None:
            return await asyncio.shield(self._opening)
        if self.state is not ConnectionState.IDLE:
            logger.warning("Cannot connect a messaging client in state %s", self.state.value)
            return False
        self.state = ConnectionState.CONNECTING
        opening = asyncio.ensure_future(self._open())
        self._opening = opening
        # Cleared when the open settles, not when the first caller returns
        opening.add_done_callback(self._clear_opening)
        return await asyncio.shield(opening)

    def _clear_opening(self, future: "asyncio.Future[bool]") -> None:
        if self._opening is future:
            self._opening = None

    async def _open(self) -> bool:
        logger.info("Connecting to chat websocket at %s", self.url)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.connect_attempts),
                wait=wait_exponential(multiplier=self.retry_wait, max=30),
                retry=retry_if_exception_type(_RETRYABLE_OPEN_ERRORS),
                reraise=True,
            ):
                with attempt:
                    ws = await self._connector(self.url)
        except Exception as exc:
            logger.error("Chat websocket connection failed: %s", exc)
            if self.state is ConnectionState.CONNECTING:
                self.state = ConnectionState.IDLE
            return False
        if self.state is not ConnectionState.CONNECTING:
            # Released while the handshake was in progress
            await ws.close()
            return False
        self._ws = ws
        self.state = ConnectionState.OPEN
        telemetry.realtime_connected.set(1)
        self._reader = asyncio.create_task(self._read_loop(ws))
        self._writer = asyncio.create_task(self._write_loop(ws))
        logger.info("Chat websocket connected")
        return True

    def send_message(self, text: str) -> bool:
        """Queue ``text`` for transmission.

        Returns ``False`` and drops the message when the connection is
        not open.
        """
        if self.state is not ConnectionState.OPEN:
            logger.warning("Dropping message, connection is %s", self.state.value)
            return False
        self._outbox.put_nowait(text)
        return True

    def on_message(self, callback: MessageCallback) -> Subscription:
        """Register ``callback`` as the only receiver of incoming frames.

        A previously registered callback stops receiving frames.
        """
        subscription = Subscription(self, callback)
        self._subscription = subscription
        return subscription

    async def _write_loop(self, ws: Any) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await ws.send(text)
            except ConnectionClosed as exc:
                logger.warning("Send failed, connection closed: %s", exc)
                return
            except Exception as exc:
                logger.error("Send failed: %s", exc)
                return
            telemetry.realtime_frames.labels(direction="out").inc()

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for frame in ws:
                if self.state is not ConnectionState.OPEN:
                    break
                if isinstance(frame, bytes):
                    frame = frame.decode("utf-8", errors="replace")
                await self._dispatch(frame)
        except ConnectionClosed as exc:
            logger.warning("Chat websocket closed: %s", exc)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Chat websocket reader failed: %s", exc)
        if self.state is ConnectionState.OPEN:
            # Closed by the peer or by a transport failure
            await self._shutdown()

    async def _dispatch(self, frame: str) -> None:
        subscription = self._subscription
        if subscription is None:
            logger.debug("No subscriber for incoming frame")
            return
        telemetry.realtime_frames.labels(direction="in").inc()
        try:
            result = subscription.callback(frame)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Message subscriber raised")

    async def close(self) -> None:
        """Close the connection; the instance cannot be reused afterwards."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        await self._shutdown()

    async def _shutdown(self) -> None:
        self.state = ConnectionState.CLOSING
        # A subscriber may close the client from inside the reader task
        current = asyncio.current_task()
        tasks = [t for t in (self._writer, self._reader) if t is not None and t is not current]
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.debug("Messaging task ended with error: %s", exc)
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as exc:
                logger.debug("Error closing chat websocket: %s", exc)
        self._subscription = None
        self._reader = None
        self._writer = None
        self.state = ConnectionState.CLOSED
        telemetry.realtime_connected.set(0)
        logger.info("Chat websocket closed")

"""
Live connection lifecycle.

Each client channel moves through ``CONNECTING → OPEN → CLOSED``:

- CONNECTING: created by ``ConnectionManager.accept``; becomes OPEN once the
  transport handshake completes.
- OPEN: the first message must be ``{"type": "init", "keywords": [...]}``,
  which registers the connection's keywords. Afterwards only ``ping`` is
  answered; anything else is logged and ignored.
- CLOSED: terminal. Reached on transport close, send failure, invalid init
  or inactivity. The transition unregisters the connection exactly once.

The transport is anything with async ``send_text``/``receive_text``/``close``
(Starlette's ``WebSocket`` in production, fakes in tests).
"""

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from starlette.websockets import WebSocketDisconnect

from tubewatch.live.registry import SubscriptionRegistry
from tubewatch.live.schemas import (
    MESSAGE_INIT,
    MESSAGE_PING,
    MESSAGE_PONG,
    ConnectionState,
    InvalidInputError,
    TransportError,
    error_message,
)
from tubewatch.observability.logging import bound_context
from tubewatch.observability.metrics import MetricsCollector

logger = structlog.get_logger(__name__)

# WebSocket close codes (RFC 6455)
CLOSE_NORMAL = 1000
CLOSE_POLICY_VIOLATION = 1008
CLOSE_TRY_AGAIN_LATER = 1013


class Transport(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def receive_text(self) -> str: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


@dataclass(eq=False)
class LiveConnection:
    """One live channel to a subscribing client.

    Hashes by identity, so it can key the registry's mappings.
    """

    transport: Transport
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ConnectionState = ConnectionState.CONNECTING
    keywords: frozenset[str] = frozenset()
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: float = field(default_factory=time.monotonic)
    send_timeout: float = 10.0
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def initialized(self) -> bool:
        return bool(self.keywords)

    async def send_text(self, text: str) -> None:
        """Send one message; concurrent sends are serialized per connection.

        Waiting for the lock counts against ``send_timeout``, so a peer that
        stops reading fails every queued send instead of holding them.

        Raises:
            TransportError: If the connection is not open, the send fails,
                or it does not complete within ``send_timeout`` seconds.
        """
        if not self.is_open:
            raise TransportError(f"connection {self.connection_id} is {self.state.value}")
        try:
            await asyncio.wait_for(self._locked_send(text), timeout=self.send_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"send timed out after {self.send_timeout}s") from e
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"send failed: {e}") from e

    async def _locked_send(self, text: str) -> None:
        async with self._send_lock:
            await self.transport.send_text(text)

    async def send_json(self, payload: dict[str, Any]) -> None:
        await self.send_text(json.dumps(payload))


class ConnectionManager:
    """Accepts connections, runs their receive loops and closes them.

    ``close`` is the single cleanup path: the receive loop, the dispatcher's
    send-failure callback and service shutdown all end up there.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        max_connections: int = 500,
        idle_timeout: float = 0.0,
        metrics: MetricsCollector | None = None,
        send_timeout: float = 10.0,
    ) -> None:
        self._registry = registry
        self._max_connections = max_connections
        self._idle_timeout = idle_timeout
        self._send_timeout = send_timeout
        self._metrics = metrics
        self._connections: dict[str, LiveConnection] = {}

    @property
    def active_connections(self) -> int:
        """Open connections, including those that have not sent ``init`` yet."""
        return len(self._connections)

    def connections(self) -> list[LiveConnection]:
        return list(self._connections.values())

    async def accept(self, transport: Transport) -> LiveConnection | None:
        """Complete the handshake and open a connection.

        Returns:
            The open connection, or None if the process is at capacity.
        """
        connection = LiveConnection(transport=transport, send_timeout=self._send_timeout)
        accept = getattr(transport, "accept", None)
        if accept is not None:
            await accept()

        if len(self._connections) >= self._max_connections:
            logger.warning("Max live connections reached, rejecting", limit=self._max_connections)
            connection.state = ConnectionState.CLOSED
            await self._close_transport(connection, CLOSE_TRY_AGAIN_LATER, "Max connections reached")
            return None

        connection.state = ConnectionState.OPEN
        self._connections[connection.connection_id] = connection
        logger.info(
            "Live connection opened",
            connection_id=connection.connection_id,
            total=len(self._connections),
        )
        return connection

    async def run(self, connection: LiveConnection) -> None:
        """Receive loop; returns once the connection is closed."""
        with bound_context(connection_id=connection.connection_id):
            reason = "client closed"
            try:
                while connection.is_open:
                    raw = await self._receive(connection)
                    if raw is None:
                        reason = "idle timeout"
                        break
                    connection.last_activity = time.monotonic()
                    await self.handle_message(connection, raw)
            except WebSocketDisconnect as e:
                reason = f"client disconnected ({e.code})"
            except TransportError as e:
                reason = str(e)
            except Exception as e:
                # Closing our side mid-receive surfaces here as a RuntimeError
                if connection.is_open:
                    logger.warning("Receive failed", error=str(e))
                reason = f"receive failed: {e}"
            finally:
                await self.close(connection, reason=reason)

    async def _receive(self, connection: LiveConnection) -> str | None:
        receive = connection.transport.receive_text()
        if self._idle_timeout <= 0:
            return await receive
        try:
            return await asyncio.wait_for(receive, timeout=self._idle_timeout)
        except asyncio.TimeoutError:
            return None

    async def handle_message(self, connection: LiveConnection, raw: str) -> None:
        """Process one inbound message for an open connection."""
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring malformed message", size=len(raw) if isinstance(raw, str) else None)
            return
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object message")
            return

        message_type = message.get("type")

        if message_type == MESSAGE_INIT and not connection.initialized:
            await self._handle_init(connection, message.get("keywords"))
        elif message_type == MESSAGE_PING:
            await connection.send_json({"type": MESSAGE_PONG})
        elif message_type == MESSAGE_INIT:
            logger.info("Ignoring repeated init message")
        else:
            logger.info("Ignoring unknown message type", message_type=message_type)

    async def _handle_init(self, connection: LiveConnection, keywords: Any) -> None:
        try:
            normalized = self._registry.register(connection, keywords)
        except InvalidInputError as e:
            logger.info("Rejected subscription", error=str(e))
            try:
                await connection.send_json(error_message("invalid_input", str(e)))
            except TransportError:
                pass
            await self.close(connection, reason=f"invalid init: {e}", code=CLOSE_POLICY_VIOLATION)
            return

        self._update_gauges()
        logger.info("Subscription active", keywords=normalized)

    async def close(
        self,
        connection: LiveConnection,
        reason: str = "closed",
        code: int = CLOSE_NORMAL,
    ) -> None:
        """Move ``connection`` to CLOSED and unregister it (once)."""
        if connection.state == ConnectionState.CLOSED:
            return
        connection.state = ConnectionState.CLOSED
        self._connections.pop(connection.connection_id, None)
        self._registry.unregister(connection)
        self._update_gauges()
        logger.info(
            "Live connection closed",
            connection_id=connection.connection_id,
            reason=reason,
            total=len(self._connections),
        )
        await self._close_transport(connection, code, reason)

    async def on_send_failure(self, connection: LiveConnection, error: Exception) -> None:
        """Dispatcher callback: a send to ``connection`` failed."""
        await self.close(connection, reason=f"send failed: {error}")

    async def close_all(self, reason: str = "server shutdown") -> None:
        for connection in list(self._connections.values()):
            await self.close(connection, reason=reason, code=1001)

    async def _close_transport(self, connection: LiveConnection, code: int, reason: str) -> None:
        try:
            await asyncio.wait_for(
                connection.transport.close(code=code, reason=reason[:120]),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Transport close timed out", connection_id=connection.connection_id)
        except Exception as e:
            # Already closed by the peer; nothing left to release
            logger.debug("Transport close failed", connection_id=connection.connection_id, error=str(e))

    def _update_gauges(self) -> None:
        if self._metrics:
            self._metrics.set_live_gauges(
                connections=self._registry.connection_count,
                keywords=self._registry.keyword_count,
            )

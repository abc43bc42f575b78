"""Tests for LiveConnection and ConnectionManager lifecycle."""

import asyncio

import pytest

from tubewatch.live.connection import (
    CLOSE_POLICY_VIOLATION,
    CLOSE_TRY_AGAIN_LATER,
    ConnectionManager,
    LiveConnection,
)
from tubewatch.live.registry import SubscriptionRegistry
from tubewatch.live.schemas import ConnectionState, TransportError


@pytest.fixture
def registry():
    return SubscriptionRegistry()


@pytest.fixture
def manager(registry):
    return ConnectionManager(registry, max_connections=3)


# ── LiveConnection ───────────────────────────────────────


class TestLiveConnection:
    def test_starts_connecting(self, make_transport):
        conn = LiveConnection(transport=make_transport())
        assert conn.state == ConnectionState.CONNECTING
        assert conn.initialized is False

    def test_ids_unique(self, make_transport):
        assert LiveConnection(make_transport()).connection_id != LiveConnection(make_transport()).connection_id

    @pytest.mark.asyncio
    async def test_send_requires_open(self, make_transport):
        conn = LiveConnection(transport=make_transport())
        with pytest.raises(TransportError):
            await conn.send_text("hello")

    @pytest.mark.asyncio
    async def test_send_failure_wrapped(self, make_connection):
        conn = make_connection(fail_send=True)
        with pytest.raises(TransportError, match="send failed"):
            await conn.send_json({"type": "pong"})

    @pytest.mark.asyncio
    async def test_concurrent_sends_all_delivered(self, make_connection):
        conn = make_connection()
        await asyncio.gather(*(conn.send_text(str(i)) for i in range(10)))
        assert sorted(conn.transport.sent, key=int) == [str(i) for i in range(10)]

    @pytest.mark.asyncio
    async def test_stalled_send_times_out(self, make_connection):
        conn = make_connection(hang_send=True, send_timeout=0.05)
        with pytest.raises(TransportError, match="timed out"):
            await asyncio.wait_for(conn.send_text("hello"), timeout=1.0)

    @pytest.mark.asyncio
    async def test_sends_queued_behind_stalled_send_time_out(self, make_connection):
        conn = make_connection(hang_send=True, send_timeout=0.05)
        results = await asyncio.wait_for(
            asyncio.gather(*(conn.send_text(str(i)) for i in range(3)), return_exceptions=True),
            timeout=1.0,
        )
        assert all(isinstance(r, TransportError) for r in results)


# ── Accept ───────────────────────────────────────────────


class TestAccept:
    @pytest.mark.asyncio
    async def test_accept_opens(self, manager, make_transport):
        transport = make_transport()
        conn = await manager.accept(transport)

        assert transport.accepted is True
        assert conn.is_open
        assert manager.active_connections == 1

    @pytest.mark.asyncio
    async def test_accept_applies_send_timeout(self, registry, make_transport):
        manager = ConnectionManager(registry, send_timeout=2.5)
        conn = await manager.accept(make_transport())
        assert conn.send_timeout == 2.5

    @pytest.mark.asyncio
    async def test_rejects_over_capacity(self, manager, make_transport):
        for _ in range(3):
            await manager.accept(make_transport())

        transport = make_transport()
        assert await manager.accept(transport) is None
        assert transport.close_code == CLOSE_TRY_AGAIN_LATER
        assert manager.active_connections == 3


# ── Messages ─────────────────────────────────────────────


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_init_registers(self, manager, registry, make_transport):
        conn = await manager.accept(make_transport())

        await manager.handle_message(conn, '{"type": "init", "keywords": ["News", "sports"]}')

        assert conn.keywords == frozenset({"news", "sports"})
        assert registry.watchers_of("news") == {conn}

    @pytest.mark.asyncio
    async def test_invalid_init_closes_with_error(self, manager, registry, make_transport):
        transport = make_transport()
        conn = await manager.accept(transport)

        await manager.handle_message(conn, '{"type": "init", "keywords": ["  "]}')

        (error,) = transport.messages("error")
        assert error["error"] == "invalid_input"
        assert transport.close_code == CLOSE_POLICY_VIOLATION
        assert conn.state == ConnectionState.CLOSED
        assert registry.connection_count == 0
        assert manager.active_connections == 0

    @pytest.mark.asyncio
    async def test_init_without_keywords_field(self, manager, make_transport):
        transport = make_transport()
        conn = await manager.accept(transport)

        await manager.handle_message(conn, '{"type": "init"}')

        assert transport.close_code == CLOSE_POLICY_VIOLATION

    @pytest.mark.asyncio
    async def test_repeated_init_ignored(self, manager, registry, make_transport):
        conn = await manager.accept(make_transport())
        await manager.handle_message(conn, '{"type": "init", "keywords": ["news"]}')

        await manager.handle_message(conn, '{"type": "init", "keywords": ["sports"]}')

        assert conn.keywords == frozenset({"news"})
        assert registry.watch("sports") is None
        assert conn.is_open

    @pytest.mark.asyncio
    async def test_ping_answered(self, manager, make_transport):
        transport = make_transport()
        conn = await manager.accept(transport)

        await manager.handle_message(conn, '{"type": "ping"}')

        assert transport.messages() == [{"type": "pong"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"type": "subscribe"}', "42"])
    async def test_unexpected_input_ignored(self, manager, raw, make_transport):
        transport = make_transport()
        conn = await manager.accept(transport)

        await manager.handle_message(conn, raw)

        assert conn.is_open
        assert transport.sent == []


# ── Run / close ──────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_disconnect_unregisters(self, manager, registry, make_transport):
        transport = make_transport()
        conn = await manager.accept(transport)
        transport.push({"type": "init", "keywords": ["jazz"]})
        transport.disconnect()

        await manager.run(conn)

        assert conn.state == ConnectionState.CLOSED
        assert registry.watch("jazz") is None
        assert manager.active_connections == 0

    @pytest.mark.asyncio
    async def test_idle_timeout_closes(self, registry, make_transport):
        manager = ConnectionManager(registry, idle_timeout=0.05)
        transport = make_transport()
        conn = await manager.accept(transport)
        transport.push({"type": "init", "keywords": ["jazz"]})

        await asyncio.wait_for(manager.run(conn), timeout=2)

        assert conn.state == ConnectionState.CLOSED
        assert transport.closed is True
        assert registry.connection_count == 0

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, manager, registry, make_transport):
        transport = make_transport()
        conn = await manager.accept(transport)
        await manager.handle_message(conn, '{"type": "init", "keywords": ["jazz"]}')

        await manager.close(conn)
        transport.close_code = None
        await manager.close(conn)

        assert transport.close_code is None
        assert registry.connection_count == 0

    @pytest.mark.asyncio
    async def test_send_failure_callback_closes(self, manager, registry, make_transport):
        conn = await manager.accept(make_transport())
        await manager.handle_message(conn, '{"type": "init", "keywords": ["jazz"]}')

        await manager.on_send_failure(conn, TransportError("gone"))

        assert conn.state == ConnectionState.CLOSED
        assert registry.watchers_of("jazz") == set()

    @pytest.mark.asyncio
    async def test_close_all(self, manager, registry, make_transport):
        transports = [make_transport() for _ in range(2)]
        for transport in transports:
            conn = await manager.accept(transport)
            await manager.handle_message(conn, '{"type": "init", "keywords": ["jazz"]}')

        await manager.close_all()

        assert manager.active_connections == 0
        assert registry.keyword_count == 0
        assert all(t.close_code == 1001 for t in transports)

"""End-to-end tests for LiveFeedService over in-memory transports."""

import asyncio

import pytest

from tubewatch.live.service import LiveFeedService


async def _settle(condition, attempts: int = 100) -> None:
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0.01)


async def _subscribe(service, transport, keywords):
    """Start a session and wait until its init has been processed."""
    transport.push({"type": "init", "keywords": keywords})
    task = asyncio.create_task(service.serve(transport))
    await _settle(lambda: service.registry.connection_count > 0 and any(
        c.transport is transport and c.initialized for c in service.connections.connections()
    ))
    return task


class TestLiveFeed:
    @pytest.mark.asyncio
    async def test_subscribe_poll_and_deliver(self, gateway, live_config, make_transport, make_video):
        gateway.script("jazz", [make_video("v1"), make_video("v2")], [make_video("v2"), make_video("v3")])
        service = LiveFeedService(gateway, config=live_config)
        transport = make_transport()
        session = await _subscribe(service, transport, ["Jazz"])

        await service.scheduler.poll_once()
        await service.scheduler.poll_once()

        assert [m["videoId"] for m in transport.messages("video")] == ["v1", "v2", "v3"]
        assert {m["keyword"] for m in transport.messages("video")} == {"Jazz"}

        transport.disconnect()
        await session
        assert service.registry.keyword_count == 0
        assert service.scheduler.watched_keywords == []

    @pytest.mark.asyncio
    async def test_routes_by_keyword(self, gateway, live_config, make_transport, make_video):
        gateway.script("news", [make_video("n1")])
        gateway.script("sports", [make_video("s1")])
        service = LiveFeedService(gateway, config=live_config)
        news, sports = make_transport(), make_transport()
        sessions = [
            await _subscribe(service, news, ["news"]),
            await _subscribe(service, sports, ["sports"]),
        ]

        await service.scheduler.poll_once()

        assert [m["videoId"] for m in news.messages("video")] == ["n1"]
        assert [m["videoId"] for m in sports.messages("video")] == ["s1"]

        await service.stop()
        await asyncio.gather(*sessions)

    @pytest.mark.asyncio
    async def test_failed_send_unregisters_only_that_connection(
        self, gateway, live_config, make_transport, make_video
    ):
        gateway.script("jazz", [make_video("v1")], [make_video("v2")])
        service = LiveFeedService(gateway, config=live_config)
        good, bad = make_transport(), make_transport()
        sessions = [
            await _subscribe(service, good, ["jazz"]),
            await _subscribe(service, bad, ["jazz"]),
        ]
        bad.fail_send = True

        await service.scheduler.poll_once()
        await _settle(lambda: service.registry.connection_count == 1)

        assert service.registry.connection_count == 1
        assert service.registry.watch("jazz").ref_count == 1
        assert bad.closed is True

        await service.scheduler.poll_once()
        assert [m["videoId"] for m in good.messages("video")] == ["v1", "v2"]

        await service.stop()
        await asyncio.gather(*sessions)

    @pytest.mark.asyncio
    async def test_heartbeat_reaches_subscribers(self, gateway, live_config, make_transport):
        service = LiveFeedService(gateway, config=live_config)
        a, b = make_transport(), make_transport()
        sessions = [
            await _subscribe(service, a, ["news"]),
            await _subscribe(service, b, ["sports"]),
        ]

        assert await service.dispatcher.heartbeat() == 2
        assert len(a.messages("heartbeat")) == 1
        assert len(b.messages("heartbeat")) == 1

        await service.stop()
        await asyncio.gather(*sessions)

    @pytest.mark.asyncio
    async def test_start_and_stop(self, gateway, live_config, make_transport):
        config = live_config.model_copy(update={"poll_interval_seconds": 0.01})
        service = LiveFeedService(gateway, config=config)
        transport = make_transport()
        session = await _subscribe(service, transport, ["jazz"])

        await service.start()
        assert service.running is True
        await _settle(lambda: gateway.calls_for("jazz") >= 1)

        await service.stop()
        await session

        assert service.running is False
        assert gateway.calls_for("jazz") >= 1
        assert transport.close_code == 1001
        assert service.stats()["connections"] == 0

    @pytest.mark.asyncio
    async def test_stats(self, gateway, live_config, make_transport):
        service = LiveFeedService(gateway, config=live_config)
        session = await _subscribe(service, make_transport(), ["news", "sports"])

        stats = service.stats()

        assert stats["running"] is False
        assert stats["connections"] == 1
        assert stats["subscribed_connections"] == 1
        assert stats["keywords"] == 2
        assert "ticks" in stats["scheduler"]

        await service.stop()
        await session


class TestStalledPeer:
    """A peer that stops reading must not hold up polls or other watchers."""

    @pytest.fixture
    def stall_config(self, live_config):
        return live_config.model_copy(update={"send_timeout_seconds": 0.05})

    @pytest.mark.asyncio
    async def test_polls_keep_delivering_past_stalled_watcher(
        self, gateway, stall_config, make_transport, make_video
    ):
        gateway.script("jazz", [make_video("v1")], [make_video("v2")], [make_video("v3")])
        service = LiveFeedService(gateway, config=stall_config)
        good, stalled = make_transport(), make_transport(hang_send=True)
        sessions = [
            await _subscribe(service, good, ["jazz"]),
            await _subscribe(service, stalled, ["jazz"]),
        ]
        watch = service.registry.watch("jazz")

        for _ in range(3):
            await asyncio.wait_for(service.scheduler.poll_once(), timeout=2.0)
            assert watch.in_flight is False

        assert [m["videoId"] for m in good.messages("video")] == ["v1", "v2", "v3"]
        assert stalled.closed is True
        assert stalled.sent == []
        assert service.registry.watch("jazz").ref_count == 1
        assert service.scheduler.get_stats()["skipped"] == 0

        await service.stop()
        await asyncio.gather(*sessions)

    @pytest.mark.asyncio
    async def test_heartbeats_continue_past_stalled_peer(self, gateway, stall_config, make_transport):
        config = stall_config.model_copy(update={"heartbeat_interval_seconds": 0.01})
        service = LiveFeedService(gateway, config=config)
        good, stalled = make_transport(), make_transport(hang_send=True)
        sessions = [
            await _subscribe(service, good, ["news"]),
            await _subscribe(service, stalled, ["sports"]),
        ]

        await service.start()
        await _settle(lambda: len(good.messages("heartbeat")) >= 5, attempts=200)

        assert len(good.messages("heartbeat")) >= 5
        assert stalled.closed is True
        assert service.registry.keywords() == ["news"]

        await service.stop()
        await asyncio.gather(*sessions)

import asyncio

import pytest

from streamsports.models import Channel, PlayerReference, ResolvedStream
from streamsports.session import ResolutionCoordinator


class SlowChain:
    """Resolves after a per-URL delay."""

    def __init__(self, delays):
        self.delays = delays
        self.started = []
        self.closed = False

    async def resolve(self, player_url):
        self.started.append(player_url)
        await asyncio.sleep(self.delays.get(player_url, 0))
        return ResolvedStream(stream_url=player_url + "/index.m3u8", raw_url=player_url + "/index.m3u8")

    async def aclose(self):
        self.closed = True


class FakeProxy:
    running = True

    def wrap(self, stream):
        return stream.proxied("http://127.0.0.1:8080/playlist?url=" + stream.raw_url)


def test_new_selection_cancels_stale_resolution():
    chain = SlowChain({"https://p/slow": 5, "https://p/fast": 0})
    coordinator = ResolutionCoordinator(chain)

    async def scenario():
        stale = asyncio.create_task(coordinator.resolve("espn", "https://p/slow"))
        await asyncio.sleep(0.05)

        fresh = await coordinator.resolve("sky", "https://p/fast")
        with pytest.raises(asyncio.CancelledError):
            await stale
        return fresh

    stream = asyncio.run(scenario())

    assert stream.raw_url == "https://p/fast/index.m3u8"
    assert coordinator.current_id == "sky"
    assert chain.started == ["https://p/slow", "https://p/fast"]


def test_resolved_stream_is_wrapped_by_running_proxy():
    coordinator = ResolutionCoordinator(SlowChain({}), proxy=FakeProxy())
    stream = asyncio.run(coordinator.resolve(1, "https://p/a"))

    assert stream.raw_url == "https://p/a/index.m3u8"
    assert stream.stream_url == "http://127.0.0.1:8080/playlist?url=https://p/a/index.m3u8"


def test_stop_cancels_and_releases():
    chain = SlowChain({"https://p/slow": 5})
    coordinator = ResolutionCoordinator(chain)

    async def scenario():
        pending = asyncio.create_task(coordinator.resolve("espn", "https://p/slow"))
        await asyncio.sleep(0.05)
        await coordinator.stop()
        with pytest.raises(asyncio.CancelledError):
            await pending

    asyncio.run(scenario())

    assert chain.closed
    assert coordinator.current_id is None


def test_catalog_record_resolves_by_player_reference():
    chain = SlowChain({})
    channel = Channel(name="ESPN", url="https://p/espn")
    assert channel.player == PlayerReference("https://p/espn")

    stream = asyncio.run(ResolutionCoordinator(chain).resolve(channel.name, channel.player))

    assert chain.started == ["https://p/espn"]
    assert stream.raw_url == "https://p/espn/index.m3u8"

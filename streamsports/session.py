"""Playback-side orchestration: one live resolution at a time."""

import asyncio
import logging
from typing import Hashable

from streamsports.models import PlayerReference, ResolvedStream
from streamsports.proxy import ProxyServer
from streamsports.resolvers.chain import ResolverChain

log = logging.getLogger(__name__)


class ResolutionCoordinator:
    """Runs the resolver chain for the currently selected channel.

    Selecting another channel while a resolution is outstanding cancels the
    stale one; its caller sees ``asyncio.CancelledError``. When a relay is
    attached the resolved stream is rewritten to go through it.
    """

    def __init__(self, chain: ResolverChain, proxy: ProxyServer | None = None):
        self.chain = chain
        self.proxy = proxy
        self._current_id: Hashable | None = None
        self._task: asyncio.Task | None = None

    @property
    def current_id(self) -> Hashable | None:
        return self._current_id

    async def resolve(self, request_id: Hashable, player: PlayerReference | str) -> ResolvedStream:
        if isinstance(player, str):
            player = PlayerReference(player)

        if self._task is not None and not self._task.done():
            log.info("Cancelling stale resolution for %s", self._current_id)
            self._task.cancel()

        self._current_id = request_id
        task = asyncio.create_task(self.chain.resolve(player.player_url))
        self._task = task

        stream = await task
        if self._current_id != request_id:
            # A newer selection won while we were finishing up
            raise asyncio.CancelledError()

        if self.proxy is not None and self.proxy.running:
            stream = self.proxy.wrap(stream)
        log.info("Stream for %s ready via %s", request_id, stream.resolver)
        return stream

    async def stop(self) -> None:
        """Cancel any in-flight resolution and release browser resources."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        self._current_id = None
        await self.chain.aclose()

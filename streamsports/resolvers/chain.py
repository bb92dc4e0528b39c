"""Ordered fallback across resolution strategies."""

import logging

from streamsports.errors import ResolutionFailed, ResolutionTimeout
from streamsports.models import ResolvedStream
from streamsports.resolvers.base import Fatal, Resolved, Resolver

log = logging.getLogger(__name__)


class ResolverChain:
    """Tries each resolver in turn until one yields a stream.

    ``TryNext`` moves on, ``Fatal`` stops the chain. Only exhausting every
    resolver is reported to the caller.
    """

    def __init__(self, resolvers: list[Resolver]):
        if not resolvers:
            raise ValueError("ResolverChain needs at least one resolver")
        self.resolvers = list(resolvers)

    async def resolve(self, player_url: str) -> ResolvedStream:
        reasons: list[str] = []
        timed_out = False

        for resolver in self.resolvers:
            outcome = await resolver.attempt(player_url)

            if isinstance(outcome, Resolved):
                return outcome.stream

            reasons.append(f"{resolver.name}: {outcome.reason}")
            if isinstance(outcome, Fatal):
                log.error("Resolver %s gave up: %s", resolver.name, outcome.reason)
                raise ResolutionFailed("could not load stream", reasons)

            timed_out = outcome.timed_out
            log.info("Resolver %s could not resolve (%s)", resolver.name, outcome.reason)

        error = ResolutionTimeout if timed_out else ResolutionFailed
        raise error("could not load stream", reasons)

    async def aclose(self) -> None:
        for resolver in self.resolvers:
            await resolver.aclose()

"""Resolver that fetches the player page and unpacks its script offline."""

import logging
from urllib.parse import urlparse

import httpx

from streamsports.config import Config
from streamsports.decoder import PackerDecoder
from streamsports.errors import DecodeFailure
from streamsports.models import ResolvedStream
from streamsports.resolvers.base import Fatal, Outcome, Resolved, Resolver, TryNext
from streamsports.tokens import log_expiry

log = logging.getLogger(__name__)


def session_cookie(response: httpx.Response) -> str | None:
    """Collapse Set-Cookie headers into a ``name=value; name2=value2`` string."""
    pairs = [c.split(";", 1)[0].strip() for c in response.headers.get_list("set-cookie")]
    pairs = [p for p in pairs if p]
    return "; ".join(pairs) or None


class StaticPageResolver(Resolver):
    """Decode the packed player script without running it."""

    def __init__(
        self,
        config: Config,
        decoder: PackerDecoder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.decoder = decoder or PackerDecoder()
        self._transport = transport

    @property
    def name(self) -> str:
        return "static"

    async def attempt(self, player_url: str) -> Outcome:
        parsed = urlparse(player_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return Fatal(f"not a player URL: {player_url!r}")

        headers = {
            "User-Agent": self.config.user_agent,
            "Referer": self.config.player_referer,
            "Accept": "*/*",
            "Accept-Language": "en-US,en;q=0.9",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.config.upstream_timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                res = await client.get(player_url, headers=headers)
        except httpx.HTTPError as e:
            return TryNext(f"player page fetch failed: {e}")

        if res.status_code != 200:
            return TryNext(f"player page returned HTTP {res.status_code}")

        try:
            script = self.decoder.decode(res.text)
            stream_url = self.decoder.find_stream_url(script)
        except DecodeFailure as e:
            log.info("Static decode failed (%s): %s", type(e).__name__, e.reason)
            return TryNext(f"{type(e).__name__}: {e.reason}")

        ttl = log_expiry(stream_url)
        if ttl is not None and ttl.total_seconds() <= 0:
            # Stale page from a cache; a live player run signs a fresh token
            return TryNext("decoded token already expired")

        log.info("Resolved statically: %s", stream_url[:80])
        return Resolved(ResolvedStream(
            stream_url=stream_url,
            raw_url=stream_url,
            cookie=session_cookie(res),
            user_agent=self.config.user_agent,
            referer=self.config.stream_referer,
            resolver=self.name,
        ))

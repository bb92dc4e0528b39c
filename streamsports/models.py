"""Data models for StreamSports."""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class PlayerReference:
    """A player page presented to the resolvers."""
    player_url: str


@dataclass
class ResolvedStream:
    """Outcome of resolving a player page.

    ``raw_url`` is always the origin manifest URL. ``stream_url`` is either
    the same URL or a relay URL wrapping it.
    """
    stream_url: str
    raw_url: str
    cookie: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    is_live: bool = True
    resolver: Optional[str] = None

    def proxied(self, url: str) -> "ResolvedStream":
        return replace(self, stream_url=url)


@dataclass
class ProxyRequest:
    """Query parameters of a single relay call."""
    target_url: str
    cookie: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None

    @classmethod
    def from_args(cls, args) -> "ProxyRequest":
        return cls(
            target_url=(args.get("url") or "").strip(),
            cookie=args.get("cookie") or None,
            user_agent=args.get("ua") or None,
            referer=args.get("ref") or None,
        )

    @classmethod
    def for_stream(cls, stream: ResolvedStream) -> "ProxyRequest":
        return cls(
            target_url=stream.raw_url,
            cookie=stream.cookie,
            user_agent=stream.user_agent,
            referer=stream.referer,
        )

    def with_target(self, url: str) -> "ProxyRequest":
        return replace(self, target_url=url)

    def to_query(self) -> dict[str, str]:
        """Query params in relay order, empty values dropped."""
        params = {"url": self.target_url}
        if self.cookie:
            params["cookie"] = self.cookie
        if self.user_agent:
            params["ua"] = self.user_agent
        if self.referer:
            params["ref"] = self.referer
        return params


@dataclass
class Channel:
    """Catalog record for a live channel or an event broadcast."""
    name: str
    url: str
    code: str = ""
    image: str = ""
    status: str = ""
    channel_name: str = ""
    country: str = ""
    sport: Optional[str] = None
    tournament: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    game_id: Optional[str] = None

    @property
    def player(self) -> PlayerReference:
        return PlayerReference(self.url)

    @property
    def is_event(self) -> bool:
        return self.sport is not None

    @property
    def is_online(self) -> bool:
        return self.status.lower() in ("online", "live", "")

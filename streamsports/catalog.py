"""Client for the cdn-live catalog API (channel and event listings)."""

import logging
from typing import Any

import httpx

from streamsports.config import Config
from streamsports.models import Channel

log = logging.getLogger(__name__)


def _team_display(home: str, away: str) -> str:
    # Simulcasts list the same name on both sides
    if home and away and home == away:
        return home
    return f"{home} vs {away}"


def parse_channels(data: dict[str, Any]) -> list[Channel]:
    channels = []
    for c in data.get("channels") or []:
        if not c.get("url"):
            continue
        channels.append(Channel(
            name=c.get("name", ""),
            channel_name=c.get("name", ""),
            url=c["url"],
            code=c.get("code", ""),
            image=c.get("image") or "",
            status=c.get("status") or "",
            country=c.get("code", ""),
        ))
    return channels


def parse_events(data: dict[str, Any]) -> list[Channel]:
    """Flatten ``{"cdn-live-tv": {sport: [event]}}`` into one record per broadcast."""
    root = data.get("cdn-live-tv") or {}
    flattened = []

    for sport, events in root.items():
        if not isinstance(events, list):
            continue
        for event in events:
            tournament = event.get("tournament", "")
            home = event.get("homeTeam", "")
            away = event.get("awayTeam", "")
            match_info = f"{tournament} - {_team_display(home, away)}"

            for channel in event.get("channels") or []:
                if not channel.get("url"):
                    continue
                flattened.append(Channel(
                    name=f"{match_info} - {channel.get('channel_name', '')}",
                    channel_name=channel.get("channel_name", ""),
                    url=channel["url"],
                    code=channel.get("channel_code", ""),
                    image=channel.get("image") or "",
                    status=event.get("status") or "unknown",
                    country=event.get("country", ""),
                    sport=sport,
                    tournament=tournament,
                    home_team=home,
                    away_team=away,
                    start=event.get("start", ""),
                    end=event.get("end", ""),
                    game_id=str(event.get("gameID") or ""),
                ))

    return flattened


class CatalogClient:
    """Fetches channel and event records; failures yield empty lists."""

    def __init__(self, config: Config, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    def _params(self) -> dict[str, str]:
        return {"user": self.config.catalog_user, "plan": self.config.catalog_plan}

    async def _get_json(self, path: str) -> dict[str, Any] | None:
        url = f"{self.config.catalog_api}/{path}"
        headers = {"User-Agent": self.config.desktop_user_agent}
        try:
            async with httpx.AsyncClient(
                timeout=self.config.catalog_timeout,
                transport=self._transport,
            ) as client:
                res = await client.get(url, params=self._params(), headers=headers)
                res.raise_for_status()
                return res.json()
        except (httpx.HTTPError, ValueError) as e:
            log.error("Catalog request %s failed: %s", path, e)
            return None

    async def fetch_channels(self) -> list[Channel]:
        """Fetch the live TV channel list."""
        data = await self._get_json("channels/")
        return parse_channels(data) if data else []

    async def fetch_events(self, sport: str = "") -> list[Channel]:
        """Fetch sports events, optionally for a single sport."""
        endpoint = f"sports/{sport}" if sport and sport != "all" else "sports"
        data = await self._get_json(f"events/{endpoint}/")
        return parse_events(data) if data else []

    async def fetch_all(self) -> list[Channel]:
        events = await self.fetch_events()
        channels = await self.fetch_channels()
        return events + channels

"""Configuration management for StreamSports."""

import json
import logging
import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Literal

log = logging.getLogger(__name__)

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)


def get_config_dir() -> Path:
    """Get config directory path."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home()))
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / "streamsports"


@dataclass
class Config:
    """StreamSports configuration."""
    default_player: Literal["mpv", "vlc"] = "mpv"
    player_args: list[str] = field(default_factory=list)

    # Origin the CDN expects on manifest and segment requests
    origin: str = "https://cdn-live.tv"
    stream_referer: str = "https://cdn-live.tv/"
    # Site that embeds the player page
    player_referer: str = "https://streamsports99.su/"
    user_agent: str = MOBILE_USER_AGENT
    desktop_user_agent: str = DESKTOP_USER_AGENT
    session_cookie_name: str = "PHPSESSID"

    catalog_api: str = "https://api.cdn-live.tv/api/v1"
    catalog_user: str = "cdnlivetv"
    catalog_plan: str = "free"
    catalog_timeout: float = 30.0

    proxy_host: str = "127.0.0.1"
    port_start: int = 8080
    port_span: int = 10
    lan_access: bool = False
    upstream_timeout: float = 15.0
    verify_tls: bool = True
    cache_bust: bool = True
    stream_segments: bool = True
    chunk_size: int = 64 * 1024

    resolve_timeout: float = 15.0
    use_browser: bool = True
    headless: bool = True


_config: Config | None = None


def load_config() -> Config:
    """Load configuration from file."""
    global _config
    if _config is not None:
        return _config

    config_file = get_config_dir() / "config.json"

    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            known = {f.name for f in fields(Config)}
            _config = Config(**{k: v for k, v in data.items() if k in known})
        except (OSError, ValueError, TypeError) as e:
            log.warning("Failed to load config %s: %s", config_file, e)
            _config = Config()
    else:
        _config = Config()

    return _config


def save_config(config: Config) -> None:
    """Save configuration to file."""
    global _config
    _config = config

    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    config_file = config_dir / "config.json"

    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(asdict(config), f, indent=2)


def get_config() -> Config:
    """Get current configuration."""
    return load_config()

"""Launch an external HLS player on a relay URL."""

import logging
import os
import shutil
import subprocess
from typing import Literal

from streamsports.config import Config

log = logging.getLogger(__name__)


def find_player(player: Literal["mpv", "vlc"]) -> str | None:
    """Find player executable path."""
    if player == "mpv":
        paths = ["mpv", "mpv.exe"]
    elif player == "vlc":
        paths = [
            "vlc",
            "vlc.exe",
            "/Applications/VLC.app/Contents/MacOS/VLC",
            r"C:\Program Files\VideoLAN\VLC\vlc.exe",
            r"C:\Program Files (x86)\VideoLAN\VLC\vlc.exe",
        ]
    else:
        return None

    for p in paths:
        if shutil.which(p):
            return p
        if os.path.isfile(p):
            return p
    return None


def build_mpv_args(url: str, title: str | None = None, extra_args: list[str] | None = None) -> list[str]:
    """Build mpv command arguments for a live relay URL."""
    args = ["mpv", "--force-window=yes", "--no-ytdl"]

    # Live HLS: keep the buffer short so manifest refreshes stay close to the edge
    args.extend([
        "--cache=yes",
        "--demuxer-max-bytes=16MiB",
        "--demuxer-readahead-secs=2",
        "--cache-secs=2",
    ])

    if title:
        args.append(f"--title={title}")

    if extra_args:
        args.extend(extra_args)

    args.append(url)
    return args


def build_vlc_args(url: str, title: str | None = None, extra_args: list[str] | None = None) -> list[str]:
    """Build VLC command arguments for a live relay URL."""
    args = ["vlc", "--no-repeat", "--no-loop", "--quiet", "--network-caching=1000"]

    if title:
        args.extend(["--meta-title", title])

    if extra_args:
        args.extend(extra_args)

    args.append(url)
    return args


def play(
    url: str,
    config: Config,
    player: Literal["mpv", "vlc"] | None = None,
    title: str | None = None,
) -> subprocess.Popen | None:
    """
    Start the player on ``url``.

    The URL must already point at the relay; the player is never given
    origin headers. Returns the process, or None if the player is missing.
    """
    player = player or config.default_player
    player_path = find_player(player)
    if not player_path:
        log.error("%s not found. Please install it and ensure it's in your PATH.", player)
        return None

    if player == "mpv":
        args = build_mpv_args(url, title=title, extra_args=config.player_args)
    else:
        args = build_vlc_args(url, title=title, extra_args=config.player_args)
    args[0] = player_path

    log.debug("Launching %s", " ".join(args))
    try:
        return subprocess.Popen(args)
    except OSError as e:
        log.error("Failed to start %s: %s", player, e)
        return None


def is_player_available(player: Literal["mpv", "vlc"]) -> bool:
    """Check if a player is available."""
    return find_player(player) is not None


def get_available_players() -> list[str]:
    """Get list of available players."""
    return [p for p in ("mpv", "vlc") if is_player_available(p)]

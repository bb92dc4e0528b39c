"""Inspection of the signed tokens carried by cdn-live manifest URLs.

Token format: ``hash.EXPIRY_UNIX.hash2.hash3.hash4``. Purely diagnostic: a
token that already expired is logged, never rejected, since the live
manifest is refetched and re-signed by the CDN every few seconds.
"""

import logging
from datetime import datetime, timedelta, timezone

log = logging.getLogger(__name__)


def token_fields(url: str) -> list[str] | None:
    """Return the dot-separated fields of the ``token`` query value."""
    idx = url.find("token=")
    if idx == -1:
        return None
    value = url[idx + len("token="):].split("&", 1)[0]
    return value.split(".")


def expiry_of(url: str, now: datetime | None = None) -> timedelta | None:
    """Time left before the token in ``url`` expires (negative once expired)."""
    fields = token_fields(url)
    if not fields or len(fields) < 2:
        return None
    try:
        expiry = datetime.fromtimestamp(int(fields[1]), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
    now = now or datetime.now(timezone.utc)
    return expiry - now


def is_expired(url: str, now: datetime | None = None) -> bool:
    ttl = expiry_of(url, now)
    return ttl is not None and ttl.total_seconds() <= 0


def describe_expiry(url: str, now: datetime | None = None) -> str:
    ttl = expiry_of(url, now)
    if ttl is None:
        return "unknown"
    seconds = int(ttl.total_seconds())
    if seconds <= 0:
        return f"expired {-seconds}s ago"
    h, rest = divmod(seconds, 3600)
    m, s = divmod(rest, 60)
    return f"{h}h{m}m{s}s"


def log_expiry(url: str) -> timedelta | None:
    """Log the remaining validity of ``url`` and return it."""
    ttl = expiry_of(url)
    if ttl is None:
        log.debug("No token expiry found in %s", url[:80])
    elif ttl.total_seconds() <= 0:
        log.warning("Stream token already expired (%s)", describe_expiry(url))
    else:
        log.info("Stream token valid for %s", describe_expiry(url))
    return ttl

import logging
from datetime import datetime, timedelta, timezone

from streamsports.tokens import describe_expiry, expiry_of, is_expired, log_expiry, token_fields

URL = "https://edge.cdn-live.tv/x/index.m3u8?token=aaa.1700000000.bbb.ccc.ddd&quality=hd"
EXPIRY = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_token_fields_stop_at_next_parameter():
    assert token_fields(URL) == ["aaa", "1700000000", "bbb", "ccc", "ddd"]


def test_expiry_relative_to_now():
    assert expiry_of(URL, now=EXPIRY - timedelta(hours=1)) == timedelta(hours=1)
    assert expiry_of(URL, now=EXPIRY + timedelta(seconds=10)) == timedelta(seconds=-10)


def test_past_timestamp_is_expired():
    ttl = expiry_of(URL)
    assert ttl is not None and ttl.total_seconds() < 0
    assert is_expired(URL)


def test_future_timestamp_is_not_expired():
    url = "https://edge.cdn-live.tv/x/index.m3u8?token=a.4102444800.b"
    assert not is_expired(url)
    assert expiry_of(url).total_seconds() > 0


def test_describe_expiry():
    assert describe_expiry(URL, now=EXPIRY - timedelta(seconds=3725)) == "1h2m5s"
    assert describe_expiry(URL, now=EXPIRY + timedelta(seconds=30)) == "expired 30s ago"


def test_unknown_expiry():
    assert expiry_of("https://edge.cdn-live.tv/x/index.m3u8") is None
    assert expiry_of("https://edge.cdn-live.tv/x/index.m3u8?token=single") is None
    assert expiry_of("https://edge.cdn-live.tv/x/index.m3u8?token=a.soon.b") is None
    assert describe_expiry("https://edge.cdn-live.tv/") == "unknown"
    assert not is_expired("https://edge.cdn-live.tv/")


def test_expired_token_is_logged_not_rejected(caplog):
    with caplog.at_level(logging.INFO, logger="streamsports.tokens"):
        ttl = log_expiry(URL)

    assert ttl.total_seconds() < 0
    assert "already expired" in caplog.text

import pytest

from streamsports.config import Config

STREAM_URL = "https://edge.cdn-live.tv/secure/abc/index.m3u8?token=f00d.4102444800.aa.bb.cc"
EXPIRED_URL = "https://edge.cdn-live.tv/secure/abc/index.m3u8?token=f00d.1700000000.aa.bb.cc"


def pack(text: str, charset: str = "abcdefghij", offset: int = 13, base: int = 7,
         reverse_digits: bool = False) -> str:
    """Encode ``text`` the way the player pages do and wrap it in a page."""
    separator = charset[base]
    groups = []
    for char in text:
        value = ord(char) + offset
        digits = ""
        while value:
            value, digit = divmod(value, base)
            digits = charset[digit] + digits
        groups.append(digits[::-1] if reverse_digits else digits)

    payload = separator.join(groups) + separator
    return (
        "<html><body><script>"
        "eval(function(h,u,n,t,e,r){return h}"
        f'("{payload}",{len(charset)},"{charset}",{offset},{base},{len(groups)}))'
        "</script></body></html>"
    )


def player_script(url: str) -> str:
    return f'var player = new Clappr.Player({{source: "{url}", autoPlay: true}});'


@pytest.fixture
def config():
    return Config(resolve_timeout=2.0, upstream_timeout=2.0)


@pytest.fixture
def player_page():
    return pack(player_script(STREAM_URL))

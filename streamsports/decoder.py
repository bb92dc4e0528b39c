"""Decoder for the JavaScript packer used by the cdn-live player pages.

The player page ships its setup script as a packed call of the form::

    eval(function(h,u,n,t,e,r){...}("<payload>",<n>,"<charset>",<offset>,<base>,<n>))

Each character of the original script is stored as a group of charset
letters. Groups are separated by ``charset[base]``; inside a group every
letter stands for its index in the charset, which gives a number written
in ``base``. Subtracting ``offset`` yields the character code.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from urllib.parse import unquote

from streamsports.errors import NoMarker, NoParams, NotFound

log = logging.getLogger(__name__)

START_MARKER = '}("'
PAYLOAD_END = '",'
PARAMS_WINDOW = 100

PARAMS_RE = re.compile(r'(\d+),\s*"([^"]+)",\s*(\d+),\s*(\d+),\s*(\d+)')
STREAM_URL_RE = re.compile(r"""["']([^"']*index\.m3u8\?token=[^"']+)["']""")
B64_CONST_RE = re.compile(r"const\s+(\w+)\s*=\s*'([A-Za-z0-9+/=_-]+)'")
DECODER_FUNC_RE = re.compile(r"function\s+(\w+)\(str\)")
FALLBACK_DECODER_NAME = "jNJVVkAypbee"
# Percent sign not followed by two hex digits makes decodeURIComponent throw
BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass(frozen=True)
class PackerParams:
    """Parameters passed to the packer function after the payload."""
    charset: str
    offset: int
    base: int

    @property
    def separator(self) -> str:
        return self.charset[self.base]


@dataclass(frozen=True)
class PackedScript:
    payload: str
    params: PackerParams


def parse_packed(html: str) -> PackedScript:
    """Locate the packed call in ``html`` and split it into payload and params."""
    start = html.find(START_MARKER)
    if start == -1:
        raise NoMarker("packer call-site marker not found")

    payload_start = start + len(START_MARKER)
    payload_end = html.find(PAYLOAD_END, payload_start)
    if payload_end == -1:
        raise NoMarker("packer payload is not terminated")

    payload = html[payload_start:payload_end]
    params_start = payload_end + len(PAYLOAD_END)
    window = html[params_start:params_start + PARAMS_WINDOW]

    match = PARAMS_RE.search(window)
    if not match:
        raise NoParams("packer parameters not found after payload")

    charset = match.group(2)
    offset = int(match.group(3))
    base = int(match.group(4))
    if base >= len(charset):
        raise NoParams(f"base {base} out of range for a {len(charset)}-letter charset")

    return PackedScript(payload=payload, params=PackerParams(charset, offset, base))


def decode_uri_component(text: str) -> str:
    """Percent-decode like JavaScript's decodeURIComponent, or return ``text`` unchanged."""
    if BAD_ESCAPE_RE.search(text):
        return text
    try:
        return unquote(text, errors="strict")
    except UnicodeDecodeError:
        return text


class PackerDecoder:
    """Unpacks player scripts and finds the manifest URL inside them.

    ``digits_to_int`` holds the positional convention of the packer and is
    the method to override if the site changes its format.
    """

    def digits_to_int(self, digits: str, base: int) -> int:
        result = 0
        for i, char in enumerate(reversed(digits)):
            if "0" <= char <= "9":
                result += int(char) * base ** i
        return result

    def unpack(self, packed: PackedScript) -> str:
        params = packed.params
        decoded = []
        for group in packed.payload.split(params.separator):
            if not group:
                continue
            digits = group
            for idx, char in enumerate(params.charset):
                digits = digits.replace(char, str(idx))
            code_point = self.digits_to_int(digits, params.base) - params.offset
            if 0 < code_point < 0x110000:
                decoded.append(chr(code_point))
        return decode_uri_component("".join(decoded))

    def decode(self, html: str) -> str:
        """Return the unpacked player script.

        Raises ``NoMarker`` or ``NoParams`` when the page does not carry a
        packed script in the expected format.
        """
        return self.unpack(parse_packed(html))

    def find_stream_url(self, script: str) -> str:
        """Return the first manifest URL in a decoded script or raise ``NotFound``."""
        match = STREAM_URL_RE.search(script)
        if match:
            return match.group(1)

        url = self._find_fragmented_url(script)
        if url:
            return url
        raise NotFound("no manifest URL in decoded script")

    def _find_fragmented_url(self, script: str) -> str | None:
        # Newer pages keep the URL as base64 fragments glued together by a
        # small decoder function: const src = f(a) + f(b) + f(c);
        fragments = {}
        for name, value in B64_CONST_RE.findall(script):
            fragments[name] = _b64_text(value)

        func = DECODER_FUNC_RE.search(script)
        decoder_name = re.escape(func.group(1) if func else FALLBACK_DECODER_NAME)
        concat_re = re.compile(rf"const\s+\w+\s*=\s*([^;]+{decoder_name}[^;]+);")
        call_re = re.compile(rf"{decoder_name}\((\w+)\)")

        for expression in concat_re.findall(script):
            url = "".join(fragments.get(name, "") for name in call_re.findall(expression))
            if url.startswith("http") and ".m3u8" in url:
                return url
        return None


def _b64_text(value: str) -> str:
    padded = value.replace("-", "+").replace("_", "/")
    padded += "=" * (-len(padded) % 4)
    try:
        return base64.b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value


_default = PackerDecoder()


def decode(html: str) -> str:
    """Unpack the player script embedded in ``html``."""
    return _default.decode(html)


def find_stream_url(script: str) -> str:
    """Find the signed manifest URL in an unpacked script."""
    return _default.find_stream_url(script)


def extract_stream_url(html: str) -> str:
    """Decode ``html`` and return its manifest URL in one step."""
    script = decode(html)
    log.debug("Unpacked %d characters of player script", len(script))
    return find_stream_url(script)

"""Flask-based HLS relay that impersonates the player origin."""

import logging
import re
import socket
import threading
import time
from functools import partial
from http import cookiejar
from urllib.parse import urlencode, urljoin, urlparse, urlsplit, urlunsplit

import requests
import urllib3
from flask import Flask, Response, request
from flask_cors import CORS
from werkzeug.serving import make_server

from streamsports.config import Config
from streamsports.errors import InvalidRequest, RelayUnavailable, UpstreamHTTPError
from streamsports.models import ProxyRequest, ResolvedStream
from streamsports.relay import SegmentRelay, SegmentStream

log = logging.getLogger(__name__)

# Werkzeug prints one line per segment otherwise
logging.getLogger("werkzeug").setLevel(logging.ERROR)

MANIFEST_MIME = "application/vnd.apple.mpegurl"
DEFAULT_SEGMENT_MIME = "video/mp2t"
NO_CACHE = "no-cache, no-store, must-revalidate"

URI_ATTR_RE = re.compile(r'URI="([^"]*)"')

REDIRECT_CODES = (301, 302, 303, 307, 308)
MAX_REDIRECTS = 5


class BlockAllCookies(cookiejar.CookiePolicy):
    """Cookie policy that never stores or sends cookies from the jar."""
    return_ok = set_ok = domain_return_ok = path_return_ok = lambda self, *args, **kwargs: False
    netscape = True
    rfc2965 = hide_cookie2 = False


class ManifestResponse(Response):
    """Live playlists change every few seconds, so no length is advertised."""
    automatically_set_content_length = False


def make_session() -> requests.Session:
    """Pooled upstream session with the shared cookie jar disabled."""
    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(pool_connections=20, pool_maxsize=100)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.cookies.set_policy(BlockAllCookies())
    return session


def resolve_url(base_url: str, maybe_relative: str) -> str:
    """Resolve a URL relative to base_url, handling malformed URLs."""
    ref = maybe_relative.strip()

    # Some CDNs emit authority-less absolute URLs (https:///path)
    if ref.startswith("https:///"):
        parsed_base = urlparse(base_url)
        return ref.replace("https:///", f"{parsed_base.scheme}://{parsed_base.netloc}/", 1)

    if ref.startswith("http://") or ref.startswith("https://"):
        return ref

    return urljoin(base_url, ref)


def validate_target(url: str) -> str:
    if not url:
        raise InvalidRequest("Missing url")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRequest(f"Malformed url: {url}")
    return url


def cache_busted(url: str) -> str:
    """Append a millisecond timestamp so edge caches hand out a fresh playlist."""
    parts = urlsplit(url)
    stamp = f"_t={int(time.time() * 1000)}"
    query = f"{parts.query}&{stamp}" if parts.query else stamp
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def upstream_headers(config: Config, req: ProxyRequest) -> dict[str, str]:
    """Headers matching the real player's fetches, which the CDN checks."""
    headers = {
        "Origin": config.origin,
        "Referer": req.referer or config.stream_referer,
        "User-Agent": req.user_agent or config.user_agent,
        "Accept": "*/*",
        "Accept-Language": "en-US,en;q=0.9",
        "Connection": "keep-alive",
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "cross-site",
        "Pragma": "no-cache",
        "Cache-Control": "no-cache",
    }
    if req.cookie:
        headers["Cookie"] = req.cookie
    return headers


def make_proxy_url(relay_base: str, path: str, req: ProxyRequest) -> str:
    return f"{relay_base}{path}?{urlencode(req.to_query())}"


def rewrite_playlist(content: str, base_url: str, req: ProxyRequest, relay_base: str) -> str:
    """Point every URI in an HLS playlist back at the relay.

    Line count and order are preserved; lines without a URI are untouched.
    """
    def segment_url(ref: str) -> str:
        absolute = resolve_url(base_url, ref)
        return make_proxy_url(relay_base, "/segment", req.with_target(absolute))

    def replace_uri(match: re.Match) -> str:
        return f'URI="{segment_url(match.group(1))}"'

    result = []
    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped:
            result.append(line)
        elif stripped.startswith("#"):
            if "URI=" in stripped:
                line = URI_ATTR_RE.sub(replace_uri, line)
            result.append(line)
        else:
            result.append(segment_url(stripped))

    return "\n".join(result)


def _pump(upstream: requests.Response, chunk_size: int, stream: SegmentStream) -> None:
    try:
        for chunk in upstream.iter_content(chunk_size=chunk_size):
            if not stream.deliver(chunk):
                log.debug("Segment reader went away, stopping %s", upstream.url)
                break
    finally:
        upstream.close()


def create_app(
    config: Config,
    relay: SegmentRelay | None = None,
    session: requests.Session | None = None,
) -> Flask:
    """Build the relay application.

    ``relay`` enables chunked segment delivery; without it segments are
    buffered whole. ``PUBLIC_BASE`` in the app config overrides the host
    used in rewritten links.
    """
    app = Flask(__name__)
    CORS(app)
    session = session or make_session()
    if not config.verify_tls:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def relay_base() -> str:
        return app.config.get("PUBLIC_BASE") or request.host_url.rstrip("/")

    def fetch(req: ProxyRequest, url: str, stream: bool = False) -> requests.Response:
        """GET ``url``, following redirects with the spoofed headers on every hop.

        The Cookie header must reach every hop, so requests is not left to
        follow redirects on its own.
        """
        headers = upstream_headers(config, req)
        for _ in range(MAX_REDIRECTS + 1):
            upstream = session.get(
                url,
                headers=headers,
                timeout=config.upstream_timeout,
                verify=config.verify_tls,
                stream=stream,
                allow_redirects=False,
            )
            location = upstream.headers.get("Location")
            if upstream.status_code not in REDIRECT_CODES or not location:
                return upstream
            upstream.close()
            url = resolve_url(url, location)
            log.debug("Upstream redirect -> %s", url)
        raise requests.TooManyRedirects(f"more than {MAX_REDIRECTS} redirects for {req.target_url}")

    @app.errorhandler(InvalidRequest)
    def invalid_request(e):
        return str(e), 400

    @app.errorhandler(UpstreamHTTPError)
    def upstream_status(e):
        # Status only, body dropped
        return Response(status=e.status)

    @app.errorhandler(requests.Timeout)
    def upstream_timeout(e):
        log.warning("Upstream timed out: %s", e)
        return "Upstream timeout", 504

    @app.errorhandler(requests.RequestException)
    def upstream_error(e):
        log.warning("Upstream request failed: %s", e)
        return f"Upstream error: {e}", 502

    @app.route("/playlist")
    @app.route("/playlist.m3u8")
    def playlist():
        req = ProxyRequest.from_args(request.args)
        validate_target(req.target_url)

        fetch_url = cache_busted(req.target_url) if config.cache_bust else req.target_url
        log.info("Playlist -> %s", req.target_url)
        upstream = fetch(req, fetch_url)

        if not 200 <= upstream.status_code < 300:
            log.warning("Upstream playlist error %d for %s", upstream.status_code, req.target_url)
            raise UpstreamHTTPError(upstream.status_code)

        # Relative entries follow the final location after redirects
        base_url = upstream.url or req.target_url
        text = upstream.content.decode("utf-8", errors="replace")
        rewritten = rewrite_playlist(text, base_url, req, relay_base())

        return ManifestResponse(
            rewritten,
            status=200,
            mimetype=MANIFEST_MIME,
            headers={
                "Cache-Control": NO_CACHE,
                "Pragma": "no-cache",
                "Expires": "0",
                "Accept-Ranges": "none",
            },
        )

    @app.route("/segment")
    def segment():
        req = ProxyRequest.from_args(request.args)
        validate_target(req.target_url)

        upstream = fetch(req, req.target_url, stream=relay is not None)

        if not 200 <= upstream.status_code < 300:
            log.warning("Upstream segment error %d for %s", upstream.status_code, req.target_url)
            upstream.close()
            raise UpstreamHTTPError(upstream.status_code)

        content_type = upstream.headers.get("Content-Type") or DEFAULT_SEGMENT_MIME
        headers = {"Cache-Control": NO_CACHE}

        if relay is None:
            body = upstream.content
            upstream.close()
            return Response(body, status=upstream.status_code, content_type=content_type, headers=headers)

        handle = relay.register(partial(_pump, upstream, config.chunk_size))
        return Response(
            relay.iter_chunks(handle),
            status=upstream.status_code,
            content_type=content_type,
            headers=headers,
        )

    return app


def lan_address() -> str:
    """Address other devices on the network can reach us at."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; this only selects the outbound interface
        sock.connect(("10.255.255.255", 1))
        return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()


class ProxyServer:
    """Runs the relay app on a background thread."""

    def __init__(
        self,
        config: Config,
        relay: SegmentRelay | None = None,
        session: requests.Session | None = None,
    ):
        self.config = config
        if relay is None and config.stream_segments:
            relay = SegmentRelay(read_timeout=config.upstream_timeout)
        self.relay = relay
        self.app = create_app(config, relay=relay, session=session)
        self.port = 0
        self.public_host = config.proxy_host
        self._server = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def base_url(self) -> str:
        return f"http://{self.public_host}:{self.port}"

    def start(self) -> int:
        """Bind the first free port in the configured window and start serving."""
        if self.running:
            return self.port

        bind_host = "0.0.0.0" if self.config.lan_access else self.config.proxy_host
        last_error = None

        for port in range(self.config.port_start, self.config.port_start + self.config.port_span):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.bind((bind_host, port))
                sock.listen(128)
            except OSError as e:
                sock.close()
                last_error = e
                log.debug("Port %d unavailable: %s", port, e)
                continue

            try:
                self._server = make_server(bind_host, port, self.app, threaded=True, fd=sock.fileno())
            finally:
                # make_server duplicates the descriptor
                sock.close()
            self.port = port
            break
        else:
            raise RelayUnavailable(
                f"no free port in {self.config.port_start}-"
                f"{self.config.port_start + self.config.port_span - 1}: {last_error}"
            )

        self.public_host = lan_address() if self.config.lan_access else self.config.proxy_host
        self.app.config["PUBLIC_BASE"] = self.base_url

        self._thread = threading.Thread(target=self._server.serve_forever, name="hls-relay", daemon=True)
        self._thread.start()
        log.info("Relay listening on %s", self.base_url)
        return self.port

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        if self.relay is not None:
            self.relay.cancel_all()
        self._server = None
        self._thread = None
        log.info("Relay stopped")

    def playlist_url(self, stream: ResolvedStream) -> str:
        """Relay URL the playback engine should open for ``stream``."""
        return make_proxy_url(self.base_url, "/playlist", ProxyRequest.for_stream(stream))

    def wrap(self, stream: ResolvedStream) -> ResolvedStream:
        return stream.proxied(self.playlist_url(stream))

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.stop()

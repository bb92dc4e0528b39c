"""Resolvers package."""

from requests.cookies import RequestsCookieJar

from streamsports.config import Config
from streamsports.resolvers.base import Fatal, Outcome, Resolved, Resolver, TryNext
from streamsports.resolvers.browser import BrowserStreamResolver
from streamsports.resolvers.chain import ResolverChain
from streamsports.resolvers.static import StaticPageResolver

__all__ = [
    "Resolver",
    "Resolved",
    "TryNext",
    "Fatal",
    "Outcome",
    "StaticPageResolver",
    "BrowserStreamResolver",
    "ResolverChain",
    "build_chain",
]


def build_chain(
    config: Config,
    cookie_jar: RequestsCookieJar | None = None,
    use_browser: bool | None = None,
) -> ResolverChain:
    """Static decoding first, then the browser fallback when enabled."""
    resolvers: list[Resolver] = [StaticPageResolver(config)]
    if config.use_browser if use_browser is None else use_browser:
        resolvers.append(BrowserStreamResolver(config, cookie_jar=cookie_jar))
    return ResolverChain(resolvers)

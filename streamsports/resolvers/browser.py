"""Resolver that runs the player page in a real browser and watches its requests.

The CDN signs manifest URLs for the client that loaded the player, so when
the offline decoder cannot be used we let the player's own script do the
work and catch the first manifest it asks for.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from playwright.async_api import Browser, BrowserContext, Page, Request, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from requests.cookies import RequestsCookieJar

from streamsports.config import Config
from streamsports.errors import ResolutionFailed, ResolutionTimeout
from streamsports.models import ResolvedStream
from streamsports.resolvers.base import Outcome, Resolved, Resolver, TryNext

log = logging.getLogger(__name__)

REPORT_BINDING = "__streamsportsReport"

INIT_SCRIPT = """
(() => {
    const report = (url) => {
        try {
            if (url && String(url).includes('.m3u8')) {
                window.__streamsportsReport(String(url));
            }
        } catch (e) {}
    };

    const originalOpen = XMLHttpRequest.prototype.open;
    XMLHttpRequest.prototype.open = function(method, url) {
        report(url);
        return originalOpen.apply(this, arguments);
    };

    const originalFetch = window.fetch;
    window.fetch = function(input, init) {
        report(input instanceof Request ? input.url : input);
        return originalFetch.apply(this, arguments);
    };

    const observer = new MutationObserver((mutations) => {
        for (const mutation of mutations) {
            if (mutation.type === 'attributes' && mutation.attributeName === 'src') {
                report(mutation.target.src);
            }
            for (const node of mutation.addedNodes || []) {
                if (node.src) report(node.src);
            }
        }
    });

    document.addEventListener('DOMContentLoaded', () => {
        observer.observe(document.documentElement, {
            attributes: true,
            attributeFilter: ['src'],
            childList: true,
            subtree: true,
        });
        document.querySelectorAll('video, [src]').forEach((el) => report(el.src));
    });
})();
"""

# Players redirect themselves mid-load; the aborted navigation is harmless
CANCELLED_NAVIGATION_MARKERS = (
    "net::ERR_ABORTED",
    "NS_BINDING_ABORTED",
    "interrupted by another navigation",
    "Navigation failed because page was closed",
    "frame was detached",
)


def is_cancelled_navigation(error: PlaywrightError) -> bool:
    message = str(error)
    return any(marker in message for marker in CANCELLED_NAVIGATION_MARKERS)


@dataclass
class _Attempt:
    found: asyncio.Future
    context: BrowserContext | None = None
    page: Page | None = None
    navigation: asyncio.Task | None = None
    listeners: list[tuple[str, Callable]] = field(default_factory=list)


class BrowserStreamResolver(Resolver):
    """Loads the player page in a disposable browser context.

    Only one resolution runs per instance; starting another tears the
    previous one down and cancels its pending result.
    """

    def __init__(
        self,
        config: Config,
        cookie_jar: RequestsCookieJar | None = None,
        browser_factory: Callable[[], Awaitable[Browser]] | None = None,
    ):
        self.config = config
        self.cookie_jar = cookie_jar if cookie_jar is not None else RequestsCookieJar()
        self._browser_factory = browser_factory
        self._playwright = None
        self._browser: Browser | None = None
        self._active: _Attempt | None = None

    @property
    def name(self) -> str:
        return "browser"

    async def attempt(self, player_url: str) -> Outcome:
        try:
            stream = await self.resolve(player_url)
        except ResolutionTimeout as e:
            return TryNext(str(e), timed_out=True)
        except ResolutionFailed as e:
            return TryNext(str(e))
        return Resolved(stream)

    async def resolve(self, player_url: str, timeout: float | None = None) -> ResolvedStream:
        """Load ``player_url`` and return the first manifest its player requests.

        Raises ``ResolutionTimeout`` when nothing shows up within ``timeout``
        seconds and ``asyncio.CancelledError`` when superseded by a newer call.
        """
        timeout = timeout or self.config.resolve_timeout
        attempt = _Attempt(found=asyncio.get_running_loop().create_future())

        previous, self._active = self._active, attempt
        if previous is not None:
            log.info("Superseding previous browser resolution")
            await self._teardown(previous)

        log.info("Browser resolution for %s", player_url)
        try:
            return await asyncio.wait_for(self._run(attempt, player_url), timeout)
        except asyncio.TimeoutError:
            log.warning("No manifest request within %ss", timeout)
            raise ResolutionTimeout(f"no manifest request within {timeout}s") from None
        finally:
            await self._teardown(attempt)
            if self._active is attempt:
                self._active = None

    async def _run(self, attempt: _Attempt, player_url: str) -> ResolvedStream:
        found = attempt.found

        def report(url: str) -> None:
            if not found.done():
                log.info("Intercepted manifest: %s", url[:80])
                found.set_result(url)

        def on_request(req: Request) -> None:
            if ".m3u8" in req.url:
                report(req.url)

        browser = await self._get_browser()
        attempt.context = await browser.new_context(
            user_agent=self.config.desktop_user_agent,
            extra_http_headers={
                "Referer": self.config.player_referer,
                "Accept-Language": "en-US,en;q=0.9",
            },
            viewport={"width": 1280, "height": 720},
            locale="en-US",
        )
        await attempt.context.expose_function(REPORT_BINDING, report)
        await attempt.context.add_init_script(INIT_SCRIPT)

        attempt.page = await attempt.context.new_page()
        attempt.page.on("request", on_request)
        attempt.listeners.append(("request", on_request))
        attempt.navigation = asyncio.create_task(self._navigate(attempt, player_url))

        url = await found

        cookie = await self._session_cookie(attempt.context)
        user_agent = await self._observed_user_agent(attempt.page)
        return ResolvedStream(
            stream_url=url,
            raw_url=url,
            cookie=cookie,
            user_agent=user_agent,
            referer=self.config.stream_referer,
            resolver=self.name,
        )

    async def _navigate(self, attempt: _Attempt, player_url: str) -> None:
        try:
            await attempt.page.goto(
                player_url,
                wait_until="domcontentloaded",
                timeout=self.config.resolve_timeout * 1000,
            )
            log.debug("Player page loaded")
        except PlaywrightTimeoutError:
            log.debug("Player page still loading, waiting for interception")
        except PlaywrightError as e:
            if is_cancelled_navigation(e):
                log.debug("Ignoring cancelled navigation: %s", e)
                return
            if not attempt.found.done():
                attempt.found.set_exception(ResolutionFailed(f"navigation failed: {e}"))

    async def _session_cookie(self, context: BrowserContext) -> str | None:
        name = self.config.session_cookie_name
        try:
            cookies = await context.cookies()
        except PlaywrightError as e:
            log.debug("Cookie store unavailable: %s", e)
            return None

        for cookie in cookies:
            if cookie.get("name") == name:
                self.cookie_jar.set(
                    name,
                    cookie.get("value", ""),
                    domain=cookie.get("domain", ""),
                    path=cookie.get("path", "/"),
                )
                log.info("Extracted %s cookie", name)
                return f"{name}={cookie.get('value', '')}"

        log.warning("No %s cookie found", name)
        return None

    async def _observed_user_agent(self, page: Page) -> str:
        try:
            return await page.evaluate("navigator.userAgent")
        except PlaywrightError:
            return self.config.desktop_user_agent

    async def _get_browser(self) -> Browser:
        if self._browser is None:
            if self._browser_factory is not None:
                self._browser = await self._browser_factory()
            else:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
        return self._browser

    async def _teardown(self, attempt: _Attempt) -> None:
        if not attempt.found.done():
            attempt.found.cancel()

        if attempt.navigation is not None:
            if not attempt.navigation.done():
                attempt.navigation.cancel()
            await asyncio.gather(attempt.navigation, return_exceptions=True)
            attempt.navigation = None

        if attempt.page is not None:
            for event, handler in attempt.listeners:
                attempt.page.remove_listener(event, handler)
            attempt.listeners.clear()
            attempt.page = None

        if attempt.context is not None:
            context, attempt.context = attempt.context, None
            try:
                await context.close()
            except PlaywrightError as e:
                log.debug("Context already closed: %s", e)

    async def aclose(self) -> None:
        if self._active is not None:
            await self._teardown(self._active)
            self._active = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


__all__ = ["BrowserStreamResolver", "INIT_SCRIPT", "is_cancelled_navigation"]

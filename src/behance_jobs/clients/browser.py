# src/behance_jobs/clients/browser.py
"""
Playwright-backed browser capability.

The browser is only an execution environment: we let the page run its own
client-side code and listen to the JSON responses it receives. One session per
work item, closed afterwards.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from behance_jobs.clients.behance import USER_AGENT
from behance_jobs.errors import RetryableError

log = logging.getLogger(__name__)

BLOCKED_RESOURCES = {"image", "media", "font", "stylesheet"}
COOKIE_DOMAIN = ".behance.net"


def _proxy_settings(proxy: str) -> Dict[str, str]:
    u = urlparse(proxy)
    out = {"server": f"{u.scheme or 'http'}://{u.hostname}:{u.port}" if u.port else f"{u.scheme or 'http'}://{u.hostname}"}
    if u.username:
        out["username"] = u.username
    if u.password:
        out["password"] = u.password
    return out


def _block_assets(route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCES:
        route.abort()
    else:
        route.continue_()


class PlaywrightSession:
    def __init__(self, proxy: Optional[str], *, headless: bool = True, cookies: Optional[Dict[str, str]] = None):
        self._pw = sync_playwright().start()
        try:
            launch_kwargs: Dict[str, Any] = {"headless": headless}
            if proxy:
                launch_kwargs["proxy"] = _proxy_settings(proxy)
            self._browser = self._pw.chromium.launch(**launch_kwargs)
            self._context = self._browser.new_context(
                user_agent=USER_AGENT, locale="en-US", viewport={"width": 1366, "height": 900}
            )
        except Exception:
            self._pw.stop()
            raise
        if cookies:
            self._context.add_cookies(
                [{"name": k, "value": v, "domain": COOKIE_DOMAIN, "path": "/"} for k, v in cookies.items()]
            )
        self._context.route("**/*", _block_assets)
        self._responses: List[Any] = []
        self._context.on("response", self._responses.append)
        self._page = self._context.new_page()

    def navigate(self, url: str, timeout: float) -> None:
        try:
            self._page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise RetryableError(f"browser navigation timed out: {url}", url=url) from e
        except PlaywrightError as e:
            raise RetryableError(f"browser navigation failed: {url}: {e}", url=url) from e

    def observe_responses(self, predicate: Callable[[Any], bool], timeout: float) -> Optional[Any]:
        """First JSON payload for which ``predicate`` is true, or None after ``timeout`` seconds."""
        deadline = time.monotonic() + timeout
        checked = 0
        while True:
            while checked < len(self._responses):
                resp = self._responses[checked]
                checked += 1
                if "json" not in (resp.headers.get("content-type") or ""):
                    continue
                try:
                    data = resp.json()
                except (PlaywrightError, ValueError):
                    continue
                if predicate(data):
                    log.debug("captured %s", resp.url)
                    return data
            if time.monotonic() >= deadline:
                return None
            # keeps the event loop pumping so new responses get recorded
            self._page.wait_for_timeout(250)

    def cookies(self) -> List[Dict[str, Any]]:
        return self._context.cookies()

    def close(self) -> None:
        try:
            self._context.close()
            self._browser.close()
        finally:
            self._pw.stop()


class PlaywrightLauncher:
    """Browser capability: ``launch(proxy)`` gives a fresh isolated session."""

    def __init__(self, *, headless: bool = True):
        self.headless = headless

    def launch(self, proxy: Optional[str], cookies: Optional[Dict[str, str]] = None) -> PlaywrightSession:
        return PlaywrightSession(proxy, headless=self.headless, cookies=cookies)

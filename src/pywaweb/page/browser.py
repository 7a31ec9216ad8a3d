from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..browser_config import BrowserConfig
from ..exceptions import BrowserError

logger = logging.getLogger(__name__)

CloseListener = Callable[[str], None]


class BrowserSession:
    """
    Chromium driven through Playwright, pointed at WhatsApp Web.

    With `user_data_dir` set the session uses a persistent profile, so a
    paired login survives restarts.
    """

    def __init__(self, cfg: BrowserConfig) -> None:
        self.cfg = cfg
        self._playwright: Any | None = None
        self._browser: Any | None = None
        self._context: Any | None = None
        self._page: Any | None = None
        self._close_listeners: list[CloseListener] = []
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    @property
    def page(self) -> Any:
        if self._page is None:
            raise BrowserError("browser session not launched")
        return self._page

    def on_close(self, listener: CloseListener) -> None:
        """`listener(reason)` runs when the page goes away without `close()`."""
        self._close_listeners.append(listener)

    async def launch(self) -> Any:
        if self._page is not None:
            return self._page

        launch_kwargs: dict[str, Any] = {
            "headless": self.cfg.headless,
            "args": list(self.cfg.args),
        }
        context_kwargs: dict[str, Any] = {
            "user_agent": self.cfg.user_agent,
            "viewport": {"width": self.cfg.viewport[0], "height": self.cfg.viewport[1]},
            # The injected script reads page internals via `window.require`.
            "bypass_csp": True,
        }
        if self.cfg.extra_http_headers:
            context_kwargs["extra_http_headers"] = dict(self.cfg.extra_http_headers)

        try:
            self._playwright = await async_playwright().start()
            chromium = self._playwright.chromium
            if self.cfg.user_data_dir:
                profile = Path(self.cfg.user_data_dir).expanduser()
                profile.mkdir(parents=True, exist_ok=True)
                self._context = await chromium.launch_persistent_context(
                    user_data_dir=str(profile), **launch_kwargs, **context_kwargs
                )
            else:
                self._browser = await chromium.launch(**launch_kwargs)
                self._context = await self._browser.new_context(**context_kwargs)

            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
            self._page.on("close", self._on_page_close)
            self._page.on("crash", self._on_page_crash)

            logger.info("navigating to %s", self.cfg.url)
            await self._page.goto(
                self.cfg.url,
                wait_until="load",
                timeout=self.cfg.navigation_timeout_s * 1000,
            )
        except PlaywrightError as e:
            await self.close()
            raise BrowserError(f"failed to open {self.cfg.url}: {e}") from e
        return self._page

    async def close(self) -> None:
        self._closing = True
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
            if self._playwright is not None:
                await self._playwright.stop()
        finally:
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None
            self._closing = False

    def _on_page_close(self, page: Any) -> None:
        self._notify_close(page, "page closed")

    def _on_page_crash(self, page: Any) -> None:
        self._notify_close(page, "page crashed")

    def _notify_close(self, page: Any, reason: str) -> None:
        # Ignore our own close() and pages we already let go of.
        if self._closing or page is not self._page:
            return
        logger.warning("browser session lost: %s", reason)
        for listener in list(self._close_listeners):
            listener(reason)

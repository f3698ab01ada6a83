"""Browser lifecycle: one launched browser, one isolated context per scenario."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .config import HarnessConfig
from .logging_utils import get_logger


@dataclass
class BrowserSession:
    context: Any
    page: Any


class PlaywrightSessionFactory:
    """Launches the configured browser once and hands out fresh contexts."""

    def __init__(self, config: HarnessConfig) -> None:
        self._config = config
        self._playwright: Any = None
        self._browser: Any = None
        self._logger = get_logger("browser")

    async def __aenter__(self) -> "PlaywrightSessionFactory":
        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self._config.browser)
        try:
            self._browser = await launcher.launch(headless=self._config.headless)
        except PlaywrightError:
            await self._playwright.stop()
            raise
        self._logger.info("browser_launched", browser=self._config.browser, headless=self._config.headless)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._logger.info("browser_closed", browser=self._config.browser)

    @asynccontextmanager
    async def session(self, *, viewport: Optional[dict[str, int]] = None) -> AsyncIterator[BrowserSession]:
        if self._browser is None:
            raise RuntimeError("PlaywrightSessionFactory must be entered before opening sessions")
        context = await self._browser.new_context(viewport=viewport or {"width": 1280, "height": 900})
        context.set_default_timeout(self._config.timeouts.render)
        context.set_default_navigation_timeout(self._config.timeouts.navigation)
        try:
            page = await context.new_page()
            yield BrowserSession(context=context, page=page)
        finally:
            try:
                await context.close()
            except PlaywrightError as exc:
                self._logger.warning("context_close_failed", error=str(exc).splitlines()[0] if str(exc) else "")

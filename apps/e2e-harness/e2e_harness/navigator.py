"""Page loads, route transitions and interstitial dismissal."""

from __future__ import annotations

import time
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError

from .config import HarnessConfig
from .errors import NavigationError
from .logging_utils import get_logger
from .polling import poll_until


class Navigator:
    """Drives one page through named application routes."""

    def __init__(self, page: Any, config: HarnessConfig, *, logger: Any = None) -> None:
        self._page = page
        self._config = config
        self._logger = logger or get_logger("navigator")

    @property
    def current_url(self) -> str:
        return self._page.url

    def url_for(self, route: str, **params: Any) -> str:
        if route.startswith(("http://", "https://")):
            return route
        if route.startswith("/"):
            template = route
        else:
            template = self._config.routes.get(route)
            if template is None:
                raise NavigationError(route, "", f"unknown route; known routes: {sorted(self._config.routes)}")
        values = {"store": self._config.store_slug, "tenant": self._config.tenant_slug, **params}
        try:
            path = template.format(**values)
        except KeyError as exc:
            raise NavigationError(route, template, f"missing route parameter {exc}") from exc
        return f"{self._config.base_url}{path}"

    async def goto(self, route: str, *, timeout_ms: Optional[int] = None, **params: Any) -> str:
        url = self.url_for(route, **params)
        timeout = self._navigation_timeout(timeout_ms)
        self._logger.info("navigation_started", route=route, url=url)
        started = time.perf_counter()
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout)
            await self._page.wait_for_load_state(self._config.load_state, timeout=timeout)
        except PlaywrightError as exc:
            self._logger.warning("navigation_failed", route=route, url=url, error=_first_line(exc))
            raise NavigationError(route, url, _first_line(exc)) from exc
        self._logger.info(
            "navigation_finished",
            route=route,
            url=self._page.url,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        await self.dismiss_interstitial()
        return self._page.url

    async def reload(self, *, timeout_ms: Optional[int] = None) -> str:
        timeout = self._navigation_timeout(timeout_ms)
        url = self._page.url
        try:
            await self._page.reload(wait_until="domcontentloaded", timeout=timeout)
            await self._page.wait_for_load_state(self._config.load_state, timeout=timeout)
        except PlaywrightError as exc:
            raise NavigationError("reload", url, _first_line(exc)) from exc
        self._logger.info("navigation_reloaded", url=self._page.url)
        await self.dismiss_interstitial()
        return self._page.url

    async def back(self, *, timeout_ms: Optional[int] = None) -> str:
        timeout = self._navigation_timeout(timeout_ms)
        url = self._page.url
        try:
            response = await self._page.go_back(wait_until="domcontentloaded", timeout=timeout)
            await self._page.wait_for_load_state(self._config.load_state, timeout=timeout)
        except PlaywrightError as exc:
            raise NavigationError("back", url, _first_line(exc)) from exc
        if response is None and self._page.url == url:
            raise NavigationError("back", url, "no previous page in history")
        self._logger.info("navigation_back", url=self._page.url)
        await self.dismiss_interstitial()
        return self._page.url

    async def wait_for_url(self, pattern: str, *, timeout_ms: int) -> str:
        try:
            await self._page.wait_for_url(pattern, timeout=timeout_ms)
        except PlaywrightError as exc:
            raise NavigationError(pattern, self._page.url, _first_line(exc)) from exc
        return self._page.url

    async def dismiss_interstitial(
        self,
        selector: Optional[str] = None,
        confirm: Optional[str] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> bool:
        """Dismiss a blocking modal if one shows up; absence counts as success."""
        gate = self._config.interstitial
        selector = selector or (gate.selector if gate else None)
        confirm = confirm or (gate.confirm if gate else None)
        if not selector or not confirm:
            return False
        timeout = self._config.timeouts.interstitial if timeout_ms is None else timeout_ms

        modal = self._page.locator(selector)
        appeared = await poll_until(
            lambda: _visible(modal),
            bool,
            timeout_ms=timeout,
            interval_ms=self._config.poll_interval_ms,
        )
        if not appeared.ok:
            return False
        try:
            await self._page.locator(confirm).first.click(timeout=timeout)
        except PlaywrightError as exc:
            self._logger.warning("interstitial_not_dismissed", selector=selector, error=_first_line(exc))
            return False
        await poll_until(
            lambda: _visible(modal),
            lambda visible: not visible,
            timeout_ms=timeout,
            interval_ms=self._config.poll_interval_ms,
        )
        self._logger.info("interstitial_dismissed", selector=selector)
        return True

    def _navigation_timeout(self, timeout_ms: Optional[int]) -> int:
        if timeout_ms is None:
            return self._config.timeouts.navigation
        # Playwright reads 0 as "wait forever"
        if timeout_ms <= 0:
            raise ValueError(f"Navigation timeout must be positive, got {timeout_ms}ms")
        return timeout_ms


async def _visible(locator: Any) -> bool:
    if await locator.count() == 0:
        return False
    return await locator.first.is_visible()


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__

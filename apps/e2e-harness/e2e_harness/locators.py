"""Element lookup and polling assertions over Playwright locators."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from .errors import HarnessAssertionError
from .logging_utils import get_logger
from .matchers import Matcher, as_matcher, try_parse_money
from .polling import poll_until


@dataclass(frozen=True)
class Element:
    """A locator together with the selector path used to reach it."""

    selector: str
    handle: Any

    def child(self, selector: str) -> "Element":
        return Element(f"{self.selector} >> {selector}", self.handle.locator(selector))

    def nth(self, index: int) -> "Element":
        return Element(f"{self.selector} >> nth={index}", self.handle.nth(index))


class Locators:
    """Resolves elements and asserts their state with explicit per-call bounds."""

    def __init__(self, page: Any, *, poll_interval_ms: int = 100, logger: Any = None) -> None:
        self._page = page
        self._interval = poll_interval_ms
        self._logger = logger or get_logger("locators")

    def element(self, selector: str, *, within: Optional[Element] = None) -> Element:
        """Unresolved element for waiting; nothing is queried yet."""
        if within is not None:
            return within.child(selector)
        return Element(selector, self._page.locator(selector))

    async def find(self, selector: str, *, within: Optional[Element] = None) -> Optional[Element]:
        """First match or None; zero matches is not an error."""
        element = self.element(selector, within=within)
        if await element.handle.count() == 0:
            self._logger.debug("element_absent", selector=element.selector)
            return None
        return Element(element.selector, element.handle.first)

    async def find_all(self, selector: str, *, within: Optional[Element] = None) -> list[Element]:
        element = self.element(selector, within=within)
        total = await element.handle.count()
        return [element.nth(index) for index in range(total)]

    async def count(self, selector: str, *, within: Optional[Element] = None) -> int:
        return await self.element(selector, within=within).handle.count()

    async def is_visible(self, target: Element | str) -> bool:
        element = self._resolve(target)
        if await element.handle.count() == 0:
            return False
        return await element.handle.first.is_visible()

    async def assert_visible(self, target: Element | str, *, timeout_ms: int) -> None:
        element = self._resolve(target)
        outcome = await poll_until(
            lambda: self._visible(element),
            bool,
            timeout_ms=timeout_ms,
            interval_ms=self._interval,
        )
        if not outcome.ok:
            raise HarnessAssertionError(
                f"element not visible after {timeout_ms}ms",
                selector=element.selector,
                expected="visible",
                actual=outcome.last_error or "hidden or absent",
            )

    async def assert_hidden(self, target: Element | str, *, timeout_ms: int) -> None:
        element = self._resolve(target)
        outcome = await poll_until(
            lambda: self._visible(element),
            lambda visible: not visible,
            timeout_ms=timeout_ms,
            interval_ms=self._interval,
        )
        if not outcome.ok:
            raise HarnessAssertionError(
                f"element still visible after {timeout_ms}ms",
                selector=element.selector,
                expected="hidden",
                actual="visible",
            )

    async def assert_enabled(self, target: Element | str, *, timeout_ms: int) -> None:
        await self._assert_enabled_state(self._resolve(target), True, timeout_ms)

    async def assert_disabled(self, target: Element | str, *, timeout_ms: int) -> None:
        await self._assert_enabled_state(self._resolve(target), False, timeout_ms)

    async def assert_text(self, target: Element | str, matcher: Matcher | str, *, timeout_ms: int) -> str:
        element = self._resolve(target)
        matcher = as_matcher(matcher)
        outcome = await poll_until(
            lambda: self._text(element),
            matcher.matches,
            timeout_ms=timeout_ms,
            interval_ms=self._interval,
        )
        if not outcome.ok:
            raise HarnessAssertionError(
                f"text mismatch after {timeout_ms}ms",
                selector=element.selector,
                expected=matcher.describe(),
                actual=outcome.value if outcome.value is not None else outcome.last_error,
            )
        return outcome.value or ""

    async def assert_count(self, selector: str, expected: Matcher | int, *, timeout_ms: int) -> int:
        matcher = as_matcher(expected)
        element = self.element(selector)
        outcome = await poll_until(
            element.handle.count,
            lambda total: matcher.matches(str(total)),
            timeout_ms=timeout_ms,
            interval_ms=self._interval,
        )
        if not outcome.ok:
            raise HarnessAssertionError(
                f"match count mismatch after {timeout_ms}ms",
                selector=selector,
                expected=matcher.describe(),
                actual=outcome.value,
            )
        return int(outcome.value or 0)

    async def read_text(self, target: Element | str, *, timeout_ms: int) -> str:
        """Text of the first match once it renders."""
        element = self._resolve(target)
        outcome = await poll_until(
            lambda: self._text(element),
            lambda text: text is not None,
            timeout_ms=timeout_ms,
            interval_ms=self._interval,
        )
        if not outcome.ok:
            raise HarnessAssertionError(
                f"no text rendered after {timeout_ms}ms",
                selector=element.selector,
                expected="text",
                actual=outcome.last_error or "absent",
            )
        return (outcome.value or "").strip()

    async def read_money(self, target: Element | str, *, timeout_ms: int) -> Decimal:
        """Parsed currency amount; unparsable text fails instead of reading as zero."""
        element = self._resolve(target)
        outcome = await poll_until(
            lambda: self._text(element),
            lambda text: text is not None and try_parse_money(text) is not None,
            timeout_ms=timeout_ms,
            interval_ms=self._interval,
        )
        amount = try_parse_money(outcome.value) if outcome.ok and outcome.value is not None else None
        if amount is None:
            raise HarnessAssertionError(
                f"no currency amount rendered after {timeout_ms}ms",
                selector=element.selector,
                expected="currency amount",
                actual=outcome.value if outcome.value is not None else outcome.last_error,
            )
        return amount

    async def _assert_enabled_state(self, element: Element, enabled: bool, timeout_ms: int) -> None:
        outcome = await poll_until(
            lambda: self._enabled(element),
            lambda state: state is enabled,
            timeout_ms=timeout_ms,
            interval_ms=self._interval,
        )
        if not outcome.ok:
            expected = "enabled" if enabled else "disabled"
            if outcome.value is None:
                actual = outcome.last_error or "absent"
            else:
                actual = "enabled" if outcome.value else "disabled"
            raise HarnessAssertionError(
                f"element not {expected} after {timeout_ms}ms",
                selector=element.selector,
                expected=expected,
                actual=actual,
            )

    def _resolve(self, target: Element | str) -> Element:
        if isinstance(target, Element):
            return target
        return self.element(target)

    @staticmethod
    async def _visible(element: Element) -> bool:
        if await element.handle.count() == 0:
            return False
        return await element.handle.first.is_visible()

    @staticmethod
    async def _enabled(element: Element) -> Optional[bool]:
        if await element.handle.count() == 0:
            return None
        return await element.handle.first.is_enabled()

    @staticmethod
    async def _text(element: Element) -> Optional[str]:
        if await element.handle.count() == 0:
            return None
        return await element.handle.first.text_content()

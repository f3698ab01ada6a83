"""Step factories composing navigator, locator and interceptor operations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from playwright.async_api import Error as PlaywrightError

from .errors import HarnessAssertionError, PreconditionUnmet
from .interceptor import InterceptedCall, InterceptRule
from .locators import Element
from .matchers import CloseTo, Matcher, Number, as_matcher, to_decimal
from .scenario import Probe, ScenarioContext, Step, StepKind

MAX_PAUSE_MS = 5_000

Target = Union[str, Callable[[ScenarioContext], Element]]


@dataclass(frozen=True)
class Captured:
    """Reference to a previously captured value."""

    key: str

    def resolve(self, ctx: ScenarioContext) -> Any:
        return ctx.captures.get(self.key)

    def __str__(self) -> str:
        return f"captured[{self.key}]"


@dataclass(frozen=True)
class CapturedSum:
    """Sum of previously captured amounts."""

    keys: tuple[str, ...]

    def resolve(self, ctx: ScenarioContext) -> Decimal:
        return sum((to_decimal(ctx.captures.get(key)) for key in self.keys), Decimal("0"))

    def __str__(self) -> str:
        return " + ".join(f"captured[{key}]" for key in self.keys)


def captured(key: str) -> Captured:
    return Captured(key)


def captured_sum(*keys: str) -> CapturedSum:
    if not keys:
        raise ValueError("captured_sum needs at least one key")
    return CapturedSum(tuple(keys))


def in_captured(key: str, selector: Optional[str] = None) -> Callable[[ScenarioContext], Element]:
    """Target an element captured earlier under ``key``, or ``selector`` inside it."""

    def resolve(ctx: ScenarioContext) -> Element:
        element = ctx.captures.get(key)
        if not isinstance(element, Element):
            raise HarnessAssertionError(f"captured value '{key}' is not an element", actual=type(element).__name__)
        return element.child(selector) if selector else element

    resolve.__name__ = f"{key} >> {selector}" if selector else key
    return resolve


def navigate(route: str, *, name: Optional[str] = None, timeout_ms: Optional[int] = None, **params: Any) -> Step:
    async def action(ctx: ScenarioContext) -> str:
        return await ctx.navigator.goto(route, timeout_ms=timeout_ms, **params)

    return Step(name or f"open {route}", StepKind.NAVIGATE, action, target=route, timeout_ms=timeout_ms)


def reload(*, name: str = "reload page", timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> str:
        return await ctx.navigator.reload(timeout_ms=timeout_ms)

    return Step(name, StepKind.NAVIGATE, action, target="reload", timeout_ms=timeout_ms)


def back(*, name: str = "navigate back", timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> str:
        return await ctx.navigator.back(timeout_ms=timeout_ms)

    return Step(name, StepKind.NAVIGATE, action, target="back", timeout_ms=timeout_ms)


def wait_for_url(pattern: str, *, name: Optional[str] = None, timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> str:
        return await ctx.navigator.wait_for_url(pattern, timeout_ms=_bound(ctx, timeout_ms, "navigation"))

    return Step(name or f"wait for url {pattern}", StepKind.NAVIGATE, action, target=pattern, timeout_ms=timeout_ms)


def dismiss_interstitial(*, name: str = "dismiss interstitial", timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> bool:
        return await ctx.navigator.dismiss_interstitial(timeout_ms=timeout_ms)

    return Step(name, StepKind.ACT, action, target="interstitial", timeout_ms=timeout_ms)


def assert_visible(target: Target, *, name: Optional[str] = None, timeout_ms: Optional[int] = None, soft: bool = False) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        await ctx.locators.assert_visible(_element(ctx, target), timeout_ms=_bound(ctx, timeout_ms, "render"))

    label = _label(target)
    return Step(name or f"{label} is visible", StepKind.ASSERT, action, label, "visible", timeout_ms, soft)


def assert_hidden(target: Target, *, name: Optional[str] = None, timeout_ms: Optional[int] = None, soft: bool = False) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        await ctx.locators.assert_hidden(_element(ctx, target), timeout_ms=_bound(ctx, timeout_ms, "render"))

    label = _label(target)
    return Step(name or f"{label} is hidden", StepKind.ASSERT, action, label, "hidden", timeout_ms, soft)


def assert_enabled(target: Target, *, name: Optional[str] = None, timeout_ms: Optional[int] = None, soft: bool = False) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        await ctx.locators.assert_enabled(_element(ctx, target), timeout_ms=_bound(ctx, timeout_ms, "render"))

    label = _label(target)
    return Step(name or f"{label} is enabled", StepKind.ASSERT, action, label, "enabled", timeout_ms, soft)


def assert_disabled(target: Target, *, name: Optional[str] = None, timeout_ms: Optional[int] = None, soft: bool = False) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        await ctx.locators.assert_disabled(_element(ctx, target), timeout_ms=_bound(ctx, timeout_ms, "render"))

    label = _label(target)
    return Step(name or f"{label} is disabled", StepKind.ASSERT, action, label, "disabled", timeout_ms, soft)


def assert_text(
    target: Target,
    matcher: Matcher | str,
    *,
    name: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    soft: bool = False,
) -> Step:
    resolved = as_matcher(matcher)

    async def action(ctx: ScenarioContext) -> str:
        return await ctx.locators.assert_text(
            _element(ctx, target), resolved, timeout_ms=_bound(ctx, timeout_ms, "render")
        )

    label = _label(target)
    return Step(name or f"{label} text", StepKind.ASSERT, action, label, resolved.describe(), timeout_ms, soft)


def assert_count(
    selector: str,
    expected: Matcher | int | Captured,
    *,
    name: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    soft: bool = False,
) -> Step:
    async def action(ctx: ScenarioContext) -> int:
        wanted = expected.resolve(ctx) if isinstance(expected, Captured) else expected
        return await ctx.locators.assert_count(selector, as_matcher(wanted), timeout_ms=_bound(ctx, timeout_ms, "render"))

    return Step(name or f"count of {selector}", StepKind.ASSERT, action, selector, str(expected), timeout_ms, soft)


def click(
    target: Target,
    *,
    name: Optional[str] = None,
    force: bool = False,
    timeout_ms: Optional[int] = None,
) -> Step:
    """Click the first match. Forced clicks on disabled controls are dispatched and expected to be no-ops."""

    async def action(ctx: ScenarioContext) -> None:
        element = _element(ctx, target)
        try:
            await element.handle.first.click(force=force, timeout=_bound(ctx, timeout_ms, "render"))
        except PlaywrightError as exc:
            raise HarnessAssertionError(
                "click failed", selector=element.selector, expected="clickable", actual=_first_line(exc)
            ) from exc

    label = _label(target)
    return Step(name or f"click {label}", StepKind.ACT, action, label, timeout_ms=timeout_ms)


def fill(target: Target, value: str, *, name: Optional[str] = None, timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        element = _element(ctx, target)
        try:
            await element.handle.first.fill(value, timeout=_bound(ctx, timeout_ms, "render"))
        except PlaywrightError as exc:
            raise HarnessAssertionError(
                "fill failed", selector=element.selector, expected="editable", actual=_first_line(exc)
            ) from exc

    label = _label(target)
    return Step(name or f"fill {label}", StepKind.ACT, action, label, timeout_ms=timeout_ms)


def check(target: Target, *, name: Optional[str] = None, timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        element = _element(ctx, target)
        try:
            await element.handle.first.check(timeout=_bound(ctx, timeout_ms, "render"))
        except PlaywrightError as exc:
            raise HarnessAssertionError(
                "check failed", selector=element.selector, expected="checkable", actual=_first_line(exc)
            ) from exc

    label = _label(target)
    return Step(name or f"check {label}", StepKind.ACT, action, label, timeout_ms=timeout_ms)


def capture_text(target: Target, key: str, *, name: Optional[str] = None, timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> str:
        text = await ctx.locators.read_text(_element(ctx, target), timeout_ms=_bound(ctx, timeout_ms, "render"))
        ctx.captures.put(key, text, source=_label(target))
        return text

    label = _label(target)
    return Step(name or f"capture {key} from {label}", StepKind.CAPTURE, action, label, key, timeout_ms)


def capture_money(target: Target, key: str, *, name: Optional[str] = None, timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> Decimal:
        amount = await ctx.locators.read_money(_element(ctx, target), timeout_ms=_bound(ctx, timeout_ms, "render"))
        ctx.captures.put(key, amount, source=_label(target))
        return amount

    label = _label(target)
    return Step(name or f"capture {key} from {label}", StepKind.CAPTURE, action, label, key, timeout_ms)


def capture_count(
    selector: str,
    key: str,
    *,
    ready: Optional[str] = None,
    name: Optional[str] = None,
    timeout_ms: Optional[int] = None,
) -> Step:
    """
    Snapshot the current match count.

    Zero matches is a valid count, so the snapshot itself never waits; pass ``ready`` to wait
    until the page has rendered that selector first.
    """

    async def action(ctx: ScenarioContext) -> int:
        if ready is not None:
            await ctx.locators.assert_visible(ready, timeout_ms=_bound(ctx, timeout_ms, "render"))
        total = await ctx.locators.count(selector)
        ctx.captures.put(key, total, source=selector)
        return total

    return Step(name or f"capture {key} as count of {selector}", StepKind.CAPTURE, action, selector, key)


def capture_state(
    key: str,
    read: Callable[[ScenarioContext], Awaitable[Any]],
    *,
    name: Optional[str] = None,
    target: Optional[str] = None,
) -> Step:
    async def action(ctx: ScenarioContext) -> Any:
        value = await read(ctx)
        ctx.captures.put(key, value, source=target or name or key)
        return value

    return Step(name or f"capture {key}", StepKind.CAPTURE, action, target, key)


def assert_money(
    target: Target,
    expected: Number | Captured | CapturedSum,
    *,
    epsilon: Optional[Number] = None,
    name: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    soft: bool = False,
) -> Step:
    """Poll the rendered amount until it is within epsilon of the expected value."""

    async def action(ctx: ScenarioContext) -> str:
        wanted = _amount(ctx, expected)
        matcher = CloseTo.of(wanted, ctx.config.money_epsilon if epsilon is None else epsilon)
        return await ctx.locators.assert_text(
            _element(ctx, target), matcher, timeout_ms=_bound(ctx, timeout_ms, "render")
        )

    label = _label(target)
    return Step(name or f"{label} amount", StepKind.ASSERT, action, label, f"~ {expected}", timeout_ms, soft)


def assert_captures_equal(
    first: str,
    second: str,
    *,
    name: Optional[str] = None,
    soft: bool = False,
) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        left = ctx.captures.get(first)
        right = ctx.captures.get(second)
        if left != right:
            raise HarnessAssertionError(
                f"captured values differ: {first} != {second}", expected=left, actual=right
            )

    return Step(name or f"{first} equals {second}", StepKind.ASSERT, action, f"{first}, {second}", "equal", soft=soft)


def assert_captured_close(
    first: str,
    second: str | CapturedSum,
    *,
    epsilon: Optional[Number] = None,
    name: Optional[str] = None,
    soft: bool = False,
) -> Step:
    """Compare two captured amounts within epsilon."""

    async def action(ctx: ScenarioContext) -> None:
        left = to_decimal(ctx.captures.get(first))
        right = _amount(ctx, captured(second) if isinstance(second, str) else second)
        matcher = CloseTo.of(right, ctx.config.money_epsilon if epsilon is None else epsilon)
        if not matcher.matches_amount(left):
            raise HarnessAssertionError(
                f"captured amounts differ: {first} vs {second}", expected=matcher.describe(), actual=str(left)
            )

    return Step(name or f"{first} ~ {second}", StepKind.ASSERT, action, f"{first}, {second}", "close", soft=soft)


def arm_intercept(rule: InterceptRule, *, name: Optional[str] = None) -> Step:
    async def action(ctx: ScenarioContext) -> None:
        await ctx.interceptor.arm(rule)

    mode = rule.behavior.mode
    return Step(name or f"intercept {rule.name} ({mode})", StepKind.INTERCEPT, action, rule.pattern, mode)


def wait_for_call(rule: str, *, index: int = 0, name: Optional[str] = None, timeout_ms: Optional[int] = None) -> Step:
    async def action(ctx: ScenarioContext) -> InterceptedCall:
        return await ctx.interceptor.wait_for_call(rule, timeout_ms=_bound(ctx, timeout_ms, "network"), index=index)

    return Step(name or f"wait for {rule} call", StepKind.WAIT, action, rule, f"call #{index + 1}", timeout_ms)


def capture_call(
    rule: str,
    key: str,
    *,
    index: int = 0,
    name: Optional[str] = None,
    timeout_ms: Optional[int] = None,
) -> Step:
    async def action(ctx: ScenarioContext) -> InterceptedCall:
        call = await ctx.interceptor.wait_for_call(rule, timeout_ms=_bound(ctx, timeout_ms, "network"), index=index)
        ctx.captures.put(key, call, source=rule)
        return call

    return Step(name or f"capture {rule} call as {key}", StepKind.CAPTURE, action, rule, key, timeout_ms)


def expect_call(
    rule: str,
    *,
    index: int = 0,
    status: Optional[int] = None,
    response_truthy: Iterable[str] = (),
    response_absent: Iterable[str] = (),
    response_equals: Optional[Mapping[str, Any]] = None,
    request_truthy: Iterable[str] = (),
    request_equals: Optional[Mapping[str, Any]] = None,
    name: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    soft: bool = False,
) -> Step:
    """
    Assert on a recorded call's request and response bodies.

    Field paths use dots (``order.id``). Expected values may be ``Captured`` references,
    where a captured ``InterceptedCall`` is read through ``response_field``/``request_field``.
    """
    response_truthy = tuple(response_truthy)
    response_absent = tuple(response_absent)
    request_truthy = tuple(request_truthy)

    async def action(ctx: ScenarioContext) -> InterceptedCall:
        call = await ctx.interceptor.wait_for_call(rule, timeout_ms=_bound(ctx, timeout_ms, "network"), index=index)
        where = f"{rule} call #{index + 1}"
        if status is not None and call.status != status:
            raise HarnessAssertionError(f"{where}: unexpected status", selector=call.url, expected=status, actual=call.status)
        for path in response_truthy:
            _expect_truthy(where, "response", call.response_body, path, call.url)
        for path in response_absent:
            found, value = dig(call.response_body, path)
            # falsy values ("error": false, {}) count as absent
            if found and value:
                raise HarnessAssertionError(
                    f"{where}: response field '{path}' should be absent", selector=call.url, expected="absent", actual=value
                )
        for path, wanted in (response_equals or {}).items():
            _expect_equal(ctx, where, "response", call.response_body, path, wanted, call.url)
        for path in request_truthy:
            _expect_truthy(where, "request", call.request_body, path, call.url)
        for path, wanted in (request_equals or {}).items():
            _expect_equal(ctx, where, "request", call.request_body, path, wanted, call.url)
        return call

    return Step(name or f"{rule} call contract", StepKind.ASSERT, action, rule, "contract", timeout_ms, soft)


@dataclass(frozen=True)
class CallField:
    """Field of a captured call body, usable as an expected value in ``expect_call``."""

    key: str
    path: str
    side: str = "response"

    def lookup(self, ctx: ScenarioContext) -> tuple[bool, Any]:
        """``(found, value)`` for optional fields; a missing capture still fails."""
        call = ctx.captures.get(self.key)
        if not isinstance(call, InterceptedCall):
            raise HarnessAssertionError(f"captured value '{self.key}' is not a network call")
        return dig(self._body(call), self.path)

    def resolve(self, ctx: ScenarioContext) -> Any:
        found, value = self.lookup(ctx)
        if not found:
            raise HarnessAssertionError(
                f"captured call '{self.key}' has no {self.side} field '{self.path}'",
                expected=self.path,
                actual=self._body(ctx.captures.get(self.key)),
            )
        return value

    def _body(self, call: InterceptedCall) -> Any:
        return call.response_body if self.side == "response" else call.request_body

    def __str__(self) -> str:
        return f"{self.key}.{self.side}.{self.path}"


def response_field(key: str, path: str) -> CallField:
    return CallField(key, path, "response")


def request_field(key: str, path: str) -> CallField:
    return CallField(key, path, "request")


def pause(ms: int, *, reason: str) -> Step:
    """Fixed wait for asynchronous setup that cannot be polled (e.g. subscriptions settling)."""
    if ms < 0 or ms > MAX_PAUSE_MS:
        raise ValueError(f"pause must be between 0 and {MAX_PAUSE_MS}ms, got {ms}")

    async def action(ctx: ScenarioContext) -> None:
        await asyncio.sleep(ms / 1000)

    return Step(f"pause {ms}ms: {reason}", StepKind.WAIT, action, target=reason, timeout_ms=ms)


def screenshot(label: Optional[str] = None, *, name: Optional[str] = None) -> Step:
    async def action(ctx: ScenarioContext) -> str:
        path = await ctx.artifacts.screenshot(ctx.page, label)
        return str(path)

    return Step(name or f"screenshot {label or ''}".strip(), StepKind.ARTIFACT, action, target=label)


def require(probe: Probe, reason: Optional[str] = None) -> Step:
    """Turn a false probe into a skipped scenario."""

    async def action(ctx: ScenarioContext) -> bool:
        if not await probe.check(ctx):
            raise PreconditionUnmet(reason or f"precondition '{probe.name}' not met")
        return True

    return Step(f"require {probe.name}", StepKind.PROBE, action, probe.target, "true")


def custom(
    name: str,
    action: Callable[[ScenarioContext], Awaitable[Any]],
    *,
    kind: StepKind = StepKind.ACT,
    target: Optional[str] = None,
    soft: bool = False,
) -> Step:
    return Step(name, kind, action, target=target, soft=soft)


def dig(body: Any, path: str) -> tuple[bool, Any]:
    """Follow a dotted path through dicts and lists."""
    current = body
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.lstrip("-").isdigit() and -len(current) <= int(part) < len(current):
            current = current[int(part)]
        else:
            return False, None
    return True, current


def _expect_truthy(where: str, side: str, body: Any, path: str, url: str) -> None:
    found, value = dig(body, path)
    if not found or not value:
        raise HarnessAssertionError(
            f"{where}: {side} field '{path}' should be truthy",
            selector=url,
            expected="truthy",
            actual=value if found else "missing",
        )


def _expect_equal(ctx: ScenarioContext, where: str, side: str, body: Any, path: str, wanted: Any, url: str) -> None:
    if hasattr(wanted, "resolve"):
        wanted = wanted.resolve(ctx)
    found, value = dig(body, path)
    if not found or value != wanted:
        raise HarnessAssertionError(
            f"{where}: {side} field '{path}' mismatch",
            selector=url,
            expected=wanted,
            actual=value if found else "missing",
        )


def _amount(ctx: ScenarioContext, expected: Number | Captured | CapturedSum) -> Decimal:
    if isinstance(expected, (Captured, CapturedSum)):
        return to_decimal(expected.resolve(ctx))
    return to_decimal(expected)


def _element(ctx: ScenarioContext, target: Target) -> Element:
    if callable(target):
        return target(ctx)
    return ctx.locators.element(target)


def _label(target: Target) -> str:
    if callable(target):
        return getattr(target, "__name__", repr(target))
    return target


def _bound(ctx: ScenarioContext, timeout_ms: Optional[int], category: str) -> int:
    if timeout_ms is not None:
        return timeout_ms
    return getattr(ctx.config.timeouts, category)


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__

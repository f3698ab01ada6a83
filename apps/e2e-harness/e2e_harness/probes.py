"""Precondition probes discovering what data the live environment currently has."""

from __future__ import annotations

from typing import Any, Optional

from .matchers import Matcher, as_matcher
from .polling import poll_until
from .scenario import Probe, ScenarioContext


def exists(selector: str, *, timeout_ms: Optional[int] = None) -> Probe:
    """True once at least one element matches within the bound."""

    async def check(ctx: ScenarioContext) -> bool:
        outcome = await poll_until(
            lambda: ctx.locators.count(selector),
            lambda total: total > 0,
            timeout_ms=_bound(ctx, timeout_ms),
            interval_ms=ctx.config.poll_interval_ms,
        )
        return outcome.ok

    return Probe(f"exists {selector}", check, selector)


def visible(selector: str, *, timeout_ms: Optional[int] = None) -> Probe:
    async def check(ctx: ScenarioContext) -> bool:
        outcome = await poll_until(
            lambda: ctx.locators.is_visible(selector),
            bool,
            timeout_ms=_bound(ctx, timeout_ms),
            interval_ms=ctx.config.poll_interval_ms,
        )
        return outcome.ok

    return Probe(f"visible {selector}", check, selector)


def count_at_least(selector: str, minimum: int, *, timeout_ms: Optional[int] = None) -> Probe:
    async def check(ctx: ScenarioContext) -> bool:
        outcome = await poll_until(
            lambda: ctx.locators.count(selector),
            lambda total: total >= minimum,
            timeout_ms=_bound(ctx, timeout_ms),
            interval_ms=ctx.config.poll_interval_ms,
        )
        return outcome.ok

    return Probe(f"at least {minimum} x {selector}", check, selector)


def find_first(
    selector: str,
    key: str,
    *,
    has: Optional[str] = None,
    lacks: Optional[str] = None,
    text: Optional[Matcher | str] = None,
    skip: int = 0,
    timeout_ms: Optional[int] = None,
) -> Probe:
    """
    Capture the first ``selector`` match that contains ``has``, does not contain ``lacks`` and
    whose text satisfies ``text``; ``skip`` passes over that many qualifying matches first.

    The match is stored under ``key`` so later steps can target elements inside it.
    """
    matcher = as_matcher(text) if text is not None else None

    async def check(ctx: ScenarioContext) -> bool:
        await poll_until(
            lambda: ctx.locators.count(selector),
            lambda total: total > 0,
            timeout_ms=_bound(ctx, timeout_ms),
            interval_ms=ctx.config.poll_interval_ms,
        )
        remaining = skip
        for candidate in await ctx.locators.find_all(selector):
            if has is not None and await candidate.handle.locator(has).count() == 0:
                continue
            if lacks is not None and await candidate.handle.locator(lacks).count() > 0:
                continue
            if matcher is not None and not matcher.matches(await candidate.handle.text_content()):
                continue
            if remaining:
                remaining -= 1
                continue
            ctx.captures.put(key, candidate, source=f"probe {selector}")
            return True
        return False

    qualifier = f" with {has}" if has else ""
    if lacks:
        qualifier += f" without {lacks}"
    ordinal = f" #{skip + 1}" if skip else ""
    return Probe(f"first{ordinal} {selector}{qualifier}", check, selector)


def captured(key: str) -> Probe:
    """True when an earlier step captured a value under ``key``."""

    async def check(ctx: ScenarioContext) -> bool:
        return key in ctx.captures

    return Probe(f"captured {key}", check, key)


def truthy(reference: Any) -> Probe:
    """
    True when a captured value, or a field of a captured call, is set.

    ``reference`` is ``steps.captured(...)`` or ``steps.response_field(...)``; an optional
    response field that is missing reads as false instead of failing the scenario.
    """

    async def check(ctx: ScenarioContext) -> bool:
        if hasattr(reference, "lookup"):
            found, value = reference.lookup(ctx)
            return found and bool(value)
        return bool(reference.resolve(ctx))

    return Probe(f"{reference} is set", check, str(reference))


def _bound(ctx: ScenarioContext, timeout_ms: Optional[int]) -> int:
    return ctx.config.timeouts.render if timeout_ms is None else timeout_ms

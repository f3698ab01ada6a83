"""Request/response interception with pass-through recording or synthetic substitution."""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, Field

from .errors import InterceptionError
from .logging_utils import get_logger


class PassThrough(BaseModel):
    """Forward to the real destination and record request and response."""

    mode: Literal["pass_through"] = "pass_through"


class Substitute(BaseModel):
    """Answer with a synthetic response without contacting the real destination."""

    mode: Literal["substitute"] = "substitute"
    status: int = 200
    body: Any = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: str = "application/json"

    def render_body(self) -> str:
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body)


Behavior = Annotated[Union[PassThrough, Substitute], Field(discriminator="mode")]


class InterceptRule(BaseModel):
    """Binding of a URL pattern to an interception behavior."""

    name: str
    pattern: str
    method: Optional[str] = None
    behavior: Behavior = Field(default_factory=PassThrough)
    required: bool = False

    def compiled(self) -> re.Pattern[str]:
        return compile_pattern(self.pattern)

    def matches(self, method: str, url: str) -> bool:
        if self.method and self.method.upper() != method.upper():
            return False
        return self.compiled().search(url) is not None


@dataclass(frozen=True)
class InterceptedCall:
    """One matched outbound call and what came back."""

    rule: str
    method: str
    url: str
    request_body: Any
    status: Optional[int]
    response_body: Any
    substituted: bool
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "method": self.method,
            "url": self.url,
            "request_body": self.request_body,
            "status": self.status,
            "response_body": self.response_body,
            "substituted": self.substituted,
            "recorded_at": self.recorded_at.isoformat(),
            "error": self.error,
        }


class NetworkInterceptor:
    """
    Installs rules on a browser context and dispatches matching requests.

    Rules are consulted in arming order and the first match wins. Playwright itself
    resolves overlapping routes last-registered-first, so every registered pattern points at
    one dispatcher that applies the arming order instead.
    """

    def __init__(self, target: Any, *, logger: Any = None) -> None:
        self._target = target
        self._rules: dict[str, InterceptRule] = {}
        self._registered: dict[str, re.Pattern[str]] = {}
        self._calls: dict[str, list[InterceptedCall]] = {}
        self._events: dict[str, asyncio.Event] = {}
        self._backend_hits: dict[str, int] = {}
        self._logger = logger or get_logger("interceptor")

    @property
    def rules(self) -> list[InterceptRule]:
        return list(self._rules.values())

    async def arm(self, rule: InterceptRule) -> None:
        if rule.name in self._rules:
            raise InterceptionError(f"Rule '{rule.name}' is already armed", pattern=rule.pattern)
        matcher = rule.compiled()
        self._rules[rule.name] = rule
        self._calls[rule.name] = []
        self._events[rule.name] = asyncio.Event()
        self._backend_hits[rule.name] = 0
        if rule.pattern not in self._registered:
            # Playwright routes with the same matcher the dispatcher applies
            await self._target.route(matcher, self._dispatch)
            self._registered[rule.pattern] = matcher
        self._logger.info(
            "intercept_armed",
            rule=rule.name,
            pattern=rule.pattern,
            mode=rule.behavior.mode,
            required=rule.required,
        )

    async def disarm_all(self) -> None:
        for pattern, matcher in list(self._registered.items()):
            try:
                await self._target.unroute(matcher, self._dispatch)
            except PlaywrightError as exc:
                self._logger.debug("unroute_failed", pattern=pattern, error=str(exc))
        self._registered.clear()

    def calls(self, name: str) -> list[InterceptedCall]:
        self._require_rule(name)
        return list(self._calls[name])

    def backend_hits(self, name: str) -> int:
        """How many times the real destination was contacted for this rule."""
        self._require_rule(name)
        return self._backend_hits[name]

    async def wait_for_call(self, name: str, *, timeout_ms: int, index: int = 0) -> InterceptedCall:
        rule = self._require_rule(name)
        event = self._events[name]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while len(self._calls[name]) <= index:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise InterceptionError(
                    f"Rule '{name}' saw {len(self._calls[name])} call(s), expected call #{index + 1} "
                    f"within {timeout_ms}ms",
                    pattern=rule.pattern,
                )
            event.clear()
            try:
                await asyncio.wait_for(event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                continue
        return self._calls[name][index]

    def verify_required(self) -> None:
        missing = [rule for rule in self._rules.values() if rule.required and not self._calls[rule.name]]
        if missing:
            names = ", ".join(f"{rule.name} ({rule.pattern})" for rule in missing)
            raise InterceptionError(f"Required intercept rule(s) never matched: {names}")

    def match(self, method: str, url: str) -> Optional[InterceptRule]:
        for rule in self._rules.values():
            if rule.matches(method, url):
                return rule
        return None

    async def _dispatch(self, route: Any, request: Any) -> None:
        rule = self.match(request.method, request.url)
        if rule is None:
            await route.fallback()
            return
        request_body = _decode(_post_data(request))
        if isinstance(rule.behavior, Substitute):
            await self._substitute(rule, rule.behavior, route, request, request_body)
        else:
            await self._pass_through(rule, route, request, request_body)

    async def _substitute(
        self,
        rule: InterceptRule,
        behavior: Substitute,
        route: Any,
        request: Any,
        request_body: Any,
    ) -> None:
        await route.fulfill(
            status=behavior.status,
            headers=behavior.headers or None,
            content_type=behavior.content_type,
            body=behavior.render_body(),
        )
        self._record(
            InterceptedCall(
                rule=rule.name,
                method=request.method,
                url=request.url,
                request_body=request_body,
                status=behavior.status,
                response_body=_decode(behavior.render_body()),
                substituted=True,
            )
        )

    async def _pass_through(self, rule: InterceptRule, route: Any, request: Any, request_body: Any) -> None:
        self._backend_hits[rule.name] += 1
        try:
            response = await route.fetch()
            text = await response.text()
        except PlaywrightError as exc:
            self._record(
                InterceptedCall(
                    rule=rule.name,
                    method=request.method,
                    url=request.url,
                    request_body=request_body,
                    status=None,
                    response_body=None,
                    substituted=False,
                    error=str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__,
                )
            )
            await route.abort()
            return
        await route.fulfill(response=response, body=text)
        self._record(
            InterceptedCall(
                rule=rule.name,
                method=request.method,
                url=request.url,
                request_body=request_body,
                status=response.status,
                response_body=_decode(text),
                substituted=False,
            )
        )

    def _record(self, call: InterceptedCall) -> None:
        self._calls[call.rule].append(call)
        self._events[call.rule].set()
        self._logger.info(
            "intercept_recorded",
            rule=call.rule,
            method=call.method,
            url=call.url,
            status=call.status,
            substituted=call.substituted,
            error=call.error,
        )

    def _require_rule(self, name: str) -> InterceptRule:
        try:
            return self._rules[name]
        except KeyError as exc:
            raise InterceptionError(f"Rule '{name}' was never armed") from exc


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """
    URL glob or ``re:``-prefixed regex.

    Globs follow Playwright's rules: ``**`` matches anything, ``*`` anything but ``/``,
    ``{a,b}`` one of the alternatives, ``\\`` escapes the next character and every other
    character, ``?`` included, matches itself.
    """
    if pattern.startswith("re:"):
        try:
            return re.compile(pattern[3:])
        except re.error as exc:
            raise InterceptionError(f"Invalid URL regex: {exc}", pattern=pattern) from exc
    parts: list[str] = ["^"]
    in_group = False
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char == "\\" and index + 1 < len(pattern):
            parts.append(re.escape(pattern[index + 1]))
            index += 2
            continue
        if char == "*":
            if pattern.startswith("**", index):
                parts.append(".*")
                index += 2
                continue
            parts.append("[^/]*")
        elif char == "{" and not in_group:
            in_group = True
            parts.append("(?:")
        elif char == "}" and in_group:
            in_group = False
            parts.append(")")
        elif char == "," and in_group:
            parts.append("|")
        else:
            parts.append(re.escape(char))
        index += 1
    if in_group:
        raise InterceptionError("Unclosed '{' in URL pattern", pattern=pattern)
    parts.append("$")
    return re.compile("".join(parts))


def _post_data(request: Any) -> Optional[str]:
    try:
        return request.post_data
    except (PlaywrightError, UnicodeDecodeError):
        return None


def _decode(text: Optional[str]) -> Any:
    if text is None or text == "":
        return None
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text

"""Error taxonomy raised by harness components."""

from __future__ import annotations

from typing import Any, Optional


class HarnessError(Exception):
    """Base class for every failure the harness reports."""


class NavigationError(HarnessError):
    """Page did not reach a stable loaded state within its bound."""

    def __init__(self, route: str, url: str, detail: str) -> None:
        self.route = route
        self.url = url
        self.detail = detail
        super().__init__(f"Navigation to '{route}' ({url}) failed: {detail}")


class HarnessAssertionError(HarnessError, AssertionError):
    """Expected UI or value condition not met within its bound."""

    def __init__(
        self,
        message: str,
        *,
        selector: Optional[str] = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        self.message = message
        self.selector = selector
        self.expected = expected
        self.actual = actual
        super().__init__(self._render())

    def _render(self) -> str:
        parts = [self.message]
        if self.selector is not None:
            parts.append(f"selector={self.selector!r}")
        if self.expected is not None:
            parts.append(f"expected={self.expected!r}")
        if self.actual is not None or self.expected is not None:
            parts.append(f"actual={self.actual!r}")
        return " | ".join(parts)


class InterceptionError(HarnessError):
    """An armed route pattern did not behave as the scenario requires."""

    def __init__(self, message: str, *, pattern: Optional[str] = None) -> None:
        self.pattern = pattern
        text = f"{message} (pattern={pattern!r})" if pattern else message
        super().__init__(text)


class PreconditionUnmet(HarnessError):
    """Environment lacks the data needed to exercise a scenario path."""


class CaptureError(HarnessError):
    """A captured value was read before capture or captured twice."""


class ScenarioTimeout(HarnessError):
    """Scenario exceeded its overall time limit."""

    def __init__(self, scenario: str, timeout_s: float) -> None:
        self.scenario = scenario
        self.timeout_s = timeout_s
        super().__init__(f"Scenario '{scenario}' exceeded its {timeout_s:g}s timeout")

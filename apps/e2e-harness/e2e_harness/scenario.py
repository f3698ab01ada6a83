"""Scenario building blocks: steps, probes, branches and the per-run context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from .config import HarnessConfig
from .errors import CaptureError
from .interceptor import NetworkInterceptor
from .locators import Locators
from .navigator import Navigator


class StepKind(str, Enum):
    NAVIGATE = "navigate"
    LOCATE = "locate"
    ASSERT = "assert"
    INTERCEPT = "intercept"
    ACT = "act"
    CAPTURE = "capture"
    WAIT = "wait"
    ARTIFACT = "artifact"
    PROBE = "probe"
    BRANCH = "branch"


Action = Callable[["ScenarioContext"], Awaitable[Any]]


@dataclass(frozen=True)
class Step:
    """One harness operation; immutable once defined."""

    name: str
    kind: StepKind
    action: Action
    target: Optional[str] = None
    expected: Optional[str] = None
    timeout_ms: Optional[int] = None
    soft: bool = False

    def describe(self) -> str:
        target = f" {self.target}" if self.target else ""
        return f"{self.kind.value}{target}"


@dataclass(frozen=True)
class Probe:
    """Precondition probe: discovers whether data for a branch currently exists."""

    name: str
    check: Callable[["ScenarioContext"], Awaitable[bool]]
    target: Optional[str] = None


@dataclass(frozen=True)
class Variant:
    name: str
    steps: tuple["Node", ...] = ()


@dataclass(frozen=True)
class Branch:
    """Probe, then run the variant matching its outcome.

    A missing variant for the observed outcome means the scenario's precondition is unmet.
    """

    name: str
    probe: Probe
    when_true: Optional[Variant] = None
    when_false: Optional[Variant] = None
    unmet_reason: Optional[str] = None


Node = Union[Step, Branch]


@dataclass(frozen=True)
class Scenario:
    name: str
    steps: tuple[Node, ...]
    description: str = ""
    tags: tuple[str, ...] = ()
    timeout_s: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError(f"Scenario '{self.name}' has no steps")


def scenario(
    name: str,
    steps: Sequence[Node],
    *,
    description: str = "",
    tags: Sequence[str] = (),
    timeout_s: Optional[float] = None,
) -> Scenario:
    return Scenario(name, tuple(steps), description, tuple(tags), timeout_s)


def variant(name: str, steps: Sequence[Node] = ()) -> Variant:
    return Variant(name, tuple(steps))


@dataclass(frozen=True)
class CapturedValue:
    key: str
    value: Any
    source: str
    captured_at: datetime


class CaptureStore:
    """Write-once values captured during one scenario run."""

    def __init__(self) -> None:
        self._values: dict[str, CapturedValue] = {}

    def put(self, key: str, value: Any, *, source: str) -> None:
        if key in self._values:
            raise CaptureError(
                f"Value '{key}' was already captured by '{self._values[key].source}'; captures are write-once"
            )
        if value is None:
            raise CaptureError(f"Refusing to capture an undefined value for '{key}' from '{source}'")
        self._values[key] = CapturedValue(key, value, source, datetime.now(timezone.utc))

    def get(self, key: str) -> Any:
        try:
            return self._values[key].value
        except KeyError as exc:
            raise CaptureError(f"Value '{key}' was compared before being captured") from exc

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def snapshot(self) -> dict[str, Any]:
        return {key: _jsonable(item.value) for key, item in self._values.items()}


class ArtifactWriter:
    """Writes diagnostic artifacts for one scenario under the run directory."""

    def __init__(self, screenshots_dir: Path, scenario_name: str) -> None:
        self.screenshots_dir = screenshots_dir
        self.scenario_name = scenario_name
        self.written: list[Path] = []

    def screenshot_path(self, label: Optional[str] = None) -> Path:
        stem = _slug(self.scenario_name)
        if label:
            stem = f"{stem}-{_slug(label)}"
        self.screenshots_dir.mkdir(parents=True, exist_ok=True)
        return self.screenshots_dir / f"{stem}.png"

    async def screenshot(self, page: Any, label: Optional[str] = None) -> Path:
        path = self.screenshot_path(label)
        await page.screenshot(path=str(path), full_page=True)
        self.written.append(path)
        return path


@dataclass
class ScenarioContext:
    """State threaded through the steps of one scenario run."""

    scenario: str
    config: HarnessConfig
    page: Any
    navigator: Navigator
    locators: Locators
    interceptor: NetworkInterceptor
    artifacts: ArtifactWriter
    captures: CaptureStore = field(default_factory=CaptureStore)
    logger: Any = None
    variants: list[str] = field(default_factory=list)

    def selector(self, name: str, default: Optional[str] = None) -> str:
        """Selector from the configured contract, falling back to ``default``."""
        value = self.config.selectors.get(name, default)
        if value is None:
            raise KeyError(f"No selector configured for '{name}'")
        return value


def _slug(value: str) -> str:
    cleaned = "".join(char if char.isalnum() or char in "-_" else "-" for char in value.lower())
    return cleaned.strip("-") or "scenario"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if hasattr(value, "as_dict"):
        return value.as_dict()
    return str(value)

"""Run result models and the declarative scenario document schema."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field


class StepStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SOFT_FAILED = "soft_failed"
    SKIPPED = "skipped"


class Outcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepResult(BaseModel):
    """Runtime result for one step; branch variants use dotted indexes (``3.1``)."""

    index: str
    name: str
    kind: str
    target: Optional[str] = None
    expected: Optional[str] = None
    status: StepStatus
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    value: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    detail: dict[str, Any] = Field(default_factory=dict)
    traceback: Optional[str] = None


class ProbeRecord(BaseModel):
    branch: str
    probe: str
    result: bool
    variant: Optional[str] = None


class ScenarioResult(BaseModel):
    """Terminal outcome of one scenario run."""

    scenario: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    outcome: Outcome
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    steps: list[StepResult] = Field(default_factory=list)
    probes: list[ProbeRecord] = Field(default_factory=list)
    variants: list[str] = Field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    detail: dict[str, Any] = Field(default_factory=dict)
    skip_reason: Optional[str] = None
    screenshot: Optional[str] = None
    artifacts: list[str] = Field(default_factory=list)
    captures: dict[str, Any] = Field(default_factory=dict)
    calls: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def soft_failures(self) -> list[StepResult]:
        return [step for step in self.steps if step.status == StepStatus.SOFT_FAILED]


class RunSummary(BaseModel):
    """Aggregated run summary written to ``summary.json``."""

    run_id: str
    base_url: str
    store_slug: str
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    total: int
    passed: int
    failed: int
    skipped: int
    soft_failures: int
    scenarios: list[ScenarioResult] = Field(default_factory=list)
    events_file: str
    summary_file: str
    junit_file: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


# Declarative scenario documents (YAML)


class ProbeSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["exists", "visible", "count_at_least", "find_first"]
    selector: str
    minimum: int = 1
    key: Optional[str] = None
    has: Optional[str] = None
    lacks: Optional[str] = None
    skip: int = 0
    timeout_ms: Optional[int] = None


class StepSpec(BaseModel):
    """One step: ``do`` names a step factory, remaining keys are its arguments."""

    model_config = ConfigDict(extra="allow")

    do: str

    def arguments(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class VariantSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    steps: list["NodeSpec"] = Field(default_factory=list)


class BranchSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    branch: str
    probe: ProbeSpec
    when_true: Optional[VariantSpec] = None
    when_false: Optional[VariantSpec] = None
    unmet_reason: Optional[str] = None


NodeSpec = Union[BranchSpec, StepSpec]


class ScenarioDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    timeout_s: Optional[float] = None
    steps: list[NodeSpec] = Field(min_length=1)


class ScenarioFile(BaseModel):
    scenarios: list[ScenarioDocument] = Field(min_length=1)


VariantSpec.model_rebuild()

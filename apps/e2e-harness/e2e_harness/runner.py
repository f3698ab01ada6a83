"""Scenario orchestration: isolated sessions, ordered steps, branches and outcomes."""

from __future__ import annotations

import asyncio
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from .config import HarnessConfig
from .console_reporter import ConsoleReporter
from .errors import (
    HarnessAssertionError,
    InterceptionError,
    NavigationError,
    PreconditionUnmet,
    ScenarioTimeout,
)
from .interceptor import NetworkInterceptor
from .locators import Locators
from .logging_utils import get_logger
from .models import Outcome, ProbeRecord, RunSummary, ScenarioResult, StepResult, StepStatus
from .navigator import Navigator
from .output_config import OutputFormat
from .reporter import RunReporter
from .scenario import ArtifactWriter, Branch, Node, Scenario, ScenarioContext, Step, StepKind, Variant


@dataclass
class _Trace:
    """Mutable record of one scenario's progress."""

    steps: list[StepResult] = field(default_factory=list)
    probes: list[ProbeRecord] = field(default_factory=list)
    current: Optional[tuple[str, Step, datetime]] = None


class _HardFailure(Exception):
    def __init__(self, step: StepResult, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(str(cause))


class ScenarioRunner:
    """Executes scenarios concurrently, each in its own browser context, and records artifacts."""

    def __init__(
        self,
        *,
        config: HarnessConfig,
        run_id: str,
        sessions: Any,
        output_format: OutputFormat = OutputFormat.AUTO,
        console: Optional[ConsoleReporter] = None,
        logger: Any = None,
    ) -> None:
        self.config = config
        self.run_id = run_id
        self._sessions = sessions
        self._console = console or ConsoleReporter(output_format=output_format)
        self._logger = logger or get_logger("runner")
        self.reporter = RunReporter(output_root=config.results_dir, run_id=run_id, config=config)

    def run_sync(self, scenarios: Sequence[Scenario]) -> RunSummary:
        return asyncio.run(self.run(scenarios))

    async def run(self, scenarios: Sequence[Scenario]) -> RunSummary:
        started_at = datetime.now(timezone.utc)
        semaphore = asyncio.Semaphore(self.config.workers)
        self._console.start_run(len(scenarios), self.run_id, self.config.base_url)
        self._logger.info("run_started", run_id=self.run_id, scenarios=len(scenarios), workers=self.config.workers)

        async def guarded(scenario: Scenario) -> None:
            async with semaphore:
                result = await self.run_scenario(scenario, factory)
            await self.reporter.record(result)
            self._console.report_scenario_result(result)

        async with self._sessions as factory:
            await asyncio.gather(*(guarded(scenario) for scenario in scenarios))

        summary = self.reporter.finalize(
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            order=[scenario.name for scenario in scenarios],
        )
        self._console.finish_run(summary)
        self._logger.info(
            "run_finished",
            run_id=self.run_id,
            passed=summary.passed,
            failed=summary.failed,
            skipped=summary.skipped,
            exit_code=summary.exit_code,
        )
        return summary

    async def run_scenario(self, scenario: Scenario, factory: Any) -> ScenarioResult:
        """Run one scenario to a terminal outcome; never raises for scenario-level failures."""
        log = self._logger.bind(scenario=scenario.name)
        started_at = datetime.now(timezone.utc)
        timer = time.perf_counter()
        timeout_s = scenario.timeout_s or self.config.scenario_timeout_s
        trace = _Trace()
        outcome = Outcome.PASSED
        failure: Optional[BaseException] = None
        failed_step: Optional[str] = None
        skip_reason: Optional[str] = None
        screenshot: Optional[str] = None
        ctx: Optional[ScenarioContext] = None
        calls: list[dict[str, Any]] = []
        log.info("scenario_started", timeout_s=timeout_s)

        try:
            async with factory.session() as session:
                ctx = self._context(scenario, session, log)
                try:
                    await asyncio.wait_for(self._run_body(scenario, ctx, trace), timeout=timeout_s)
                except PreconditionUnmet as exc:
                    outcome = Outcome.SKIPPED
                    skip_reason = str(exc)
                    log.info("scenario_skipped", reason=skip_reason)
                except _HardFailure as exc:
                    outcome = Outcome.FAILED
                    failure = exc.cause
                    failed_step = exc.step.name
                except asyncio.TimeoutError:
                    outcome = Outcome.FAILED
                    failure = ScenarioTimeout(scenario.name, timeout_s)
                    failed_step = self._record_timeout(trace, failure)
                    log.warning("scenario_timed_out", timeout_s=timeout_s, step=failed_step)

                if outcome == Outcome.FAILED and self.config.screenshot_on_failure:
                    screenshot = await self._failure_screenshot(ctx, log)
                await ctx.interceptor.disarm_all()
                calls = [call.as_dict() for rule in ctx.interceptor.rules for call in ctx.interceptor.calls(rule.name)]
        except (PlaywrightError, OSError, RuntimeError) as exc:
            # a session that never opened, or one whose teardown broke after the body finished
            stage = "open session" if ctx is None else "close session"
            log.error("session_failed", stage=stage, error=_first_line(exc))
            if ctx is None or outcome != Outcome.FAILED:
                outcome = Outcome.FAILED
                failure = exc
                failed_step = stage
                skip_reason = None

        finished_at = datetime.now(timezone.utc)
        result = ScenarioResult(
            scenario=scenario.name,
            description=scenario.description,
            tags=list(scenario.tags),
            outcome=outcome,
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=round((time.perf_counter() - timer) * 1000, 3),
            steps=trace.steps,
            probes=trace.probes,
            variants=list(ctx.variants) if ctx else [],
            failed_step=failed_step,
            error=str(failure) if failure else None,
            error_type=failure.__class__.__name__ if failure else None,
            detail=_failure_detail(failure) if failure else {},
            skip_reason=skip_reason,
            screenshot=screenshot,
            artifacts=[str(path) for path in ctx.artifacts.written] if ctx else [],
            captures=ctx.captures.snapshot() if ctx else {},
            calls=calls,
        )
        log.info(
            "scenario_finished",
            outcome=outcome.value,
            duration_ms=result.duration_ms,
            soft_failures=len(result.soft_failures),
            variants=result.variants,
        )
        return result

    async def _run_body(self, scenario: Scenario, ctx: ScenarioContext, trace: _Trace) -> None:
        await self._run_nodes(scenario.steps, ctx, trace, prefix="")
        await self._run_step(
            Step("verify required intercepts", StepKind.INTERCEPT, _verify_required),
            ctx,
            trace,
            str(len(scenario.steps) + 1),
        )

    async def _run_nodes(self, nodes: Sequence[Node], ctx: ScenarioContext, trace: _Trace, *, prefix: str) -> None:
        for index, node in enumerate(nodes, start=1):
            label = f"{prefix}{index}"
            if isinstance(node, Branch):
                await self._run_branch(node, ctx, trace, label)
            else:
                await self._run_step(node, ctx, trace, label)

    async def _run_step(self, step: Step, ctx: ScenarioContext, trace: _Trace, label: str) -> StepResult:
        started_at = datetime.now(timezone.utc)
        timer = time.perf_counter()
        trace.current = (label, step, started_at)
        status = StepStatus.PASSED
        value: Any = None
        error: Optional[BaseException] = None
        tb_text: Optional[str] = None

        try:
            value = await step.action(ctx)
        except PreconditionUnmet as exc:
            status = StepStatus.SKIPPED
            error = exc
        except Exception as exc:
            status = StepStatus.SOFT_FAILED if step.soft else StepStatus.FAILED
            error = exc
            tb_text = traceback.format_exc()
        # not cleared on cancellation: the timeout handler reports the running step
        trace.current = None

        result = StepResult(
            index=label,
            name=step.name,
            kind=step.kind.value,
            target=step.target,
            expected=step.expected,
            status=status,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_ms=round((time.perf_counter() - timer) * 1000, 3),
            value=_describe_value(value),
            error=str(error) if error else None,
            error_type=error.__class__.__name__ if error else None,
            detail=_failure_detail(error) if error else {},
            traceback=tb_text,
        )
        trace.steps.append(result)
        self._log_step(ctx.logger, result)

        if status == StepStatus.SKIPPED:
            raise error  # type: ignore[misc]
        if status == StepStatus.FAILED:
            raise _HardFailure(result, error)  # type: ignore[arg-type]
        return result

    async def _run_branch(self, branch: Branch, ctx: ScenarioContext, trace: _Trace, label: str) -> None:
        selected: list[Variant] = []

        async def probe(context: ScenarioContext) -> str:
            observed = bool(await branch.probe.check(context))
            chosen = branch.when_true if observed else branch.when_false
            trace.probes.append(
                ProbeRecord(
                    branch=branch.name,
                    probe=branch.probe.name,
                    result=observed,
                    variant=chosen.name if chosen else None,
                )
            )
            if chosen is None:
                raise PreconditionUnmet(
                    branch.unmet_reason or f"{branch.name}: no variant for probe '{branch.probe.name}' = {observed}"
                )
            selected.append(chosen)
            return f"{branch.probe.name} = {observed} -> {chosen.name}"

        await self._run_step(Step(branch.name, StepKind.BRANCH, probe, target=branch.probe.target), ctx, trace, label)
        chosen = selected[0]
        ctx.variants.append(chosen.name)
        ctx.logger.info("variant_selected", branch=branch.name, variant=chosen.name)
        await self._run_nodes(chosen.steps, ctx, trace, prefix=f"{label}.")

    def _context(self, scenario: Scenario, session: Any, log: Any) -> ScenarioContext:
        page = session.page
        return ScenarioContext(
            scenario=scenario.name,
            config=self.config,
            page=page,
            navigator=Navigator(page, self.config, logger=log.bind(component="navigator")),
            locators=Locators(page, poll_interval_ms=self.config.poll_interval_ms, logger=log.bind(component="locators")),
            interceptor=NetworkInterceptor(session.context, logger=log.bind(component="interceptor")),
            artifacts=ArtifactWriter(self.reporter.artifacts.screenshots_dir, scenario.name),
            logger=log,
        )

    @staticmethod
    def _record_timeout(trace: _Trace, failure: ScenarioTimeout) -> Optional[str]:
        if trace.current is None:
            return None
        label, step, started_at = trace.current
        now = datetime.now(timezone.utc)
        trace.steps.append(
            StepResult(
                index=label,
                name=step.name,
                kind=step.kind.value,
                target=step.target,
                expected=step.expected,
                status=StepStatus.FAILED,
                started_at=started_at,
                finished_at=now,
                duration_ms=round((now - started_at).total_seconds() * 1000, 3),
                error=str(failure),
                error_type=failure.__class__.__name__,
            )
        )
        trace.current = None
        return step.name

    @staticmethod
    async def _failure_screenshot(ctx: ScenarioContext, log: Any) -> Optional[str]:
        try:
            path = await ctx.artifacts.screenshot(ctx.page, "failure")
        except (PlaywrightError, OSError) as exc:
            log.warning("screenshot_failed", error=_first_line(exc))
            return None
        log.info("screenshot_saved", path=str(path))
        return str(path)

    @staticmethod
    def _log_step(log: Any, result: StepResult) -> None:
        if result.status == StepStatus.PASSED:
            log.debug("step_passed", step=result.name, index=result.index, duration_ms=result.duration_ms)
        elif result.status == StepStatus.SOFT_FAILED:
            log.warning("step_soft_failed", step=result.name, index=result.index, error=result.error)
        elif result.status == StepStatus.SKIPPED:
            log.info("step_precondition_unmet", step=result.name, index=result.index, reason=result.error)
        else:
            log.error("step_failed", step=result.name, index=result.index, error=result.error)


async def _verify_required(ctx: ScenarioContext) -> None:
    ctx.interceptor.verify_required()


def _failure_detail(error: BaseException) -> dict[str, Any]:
    if isinstance(error, HarnessAssertionError):
        detail = {"selector": error.selector, "expected": error.expected, "actual": error.actual}
    elif isinstance(error, InterceptionError):
        detail = {"pattern": error.pattern}
    elif isinstance(error, NavigationError):
        detail = {"route": error.route, "url": error.url}
    elif isinstance(error, ScenarioTimeout):
        detail = {"timeout_s": error.timeout_s}
    else:
        detail = {}
    return {key: _describe_value(value) for key, value in detail.items() if value is not None}


def _describe_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if len(text) <= 200 else text[:197] + "..."


def _first_line(exc: BaseException) -> str:
    text = str(exc)
    return text.splitlines()[0] if text else exc.__class__.__name__

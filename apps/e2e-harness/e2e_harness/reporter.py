"""Run artifacts: streamed events, summary and JUnit report."""

from __future__ import annotations

import asyncio
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from .config import HarnessConfig
from .models import Outcome, RunSummary, ScenarioResult


@dataclass
class RunArtifacts:
    run_dir: Path
    events_file: Path
    summary_file: Path
    junit_file: Path
    screenshots_dir: Path


class RunReporter:
    """Collects scenario results as they complete; safe under concurrent completion."""

    def __init__(self, *, output_root: Path, run_id: str, config: HarnessConfig) -> None:
        self.run_id = run_id
        self.config = config
        self.artifacts = _prepare_artifacts(output_root, run_id)
        self.artifacts.events_file.write_text("", encoding="utf-8")
        self._results: list[ScenarioResult] = []
        self._lock = asyncio.Lock()

    @property
    def results(self) -> list[ScenarioResult]:
        return list(self._results)

    async def record(self, result: ScenarioResult) -> None:
        async with self._lock:
            self._results.append(result)
            with self.artifacts.events_file.open("a", encoding="utf-8") as handle:
                handle.write(result.model_dump_json() + "\n")

    def finalize(
        self,
        *,
        started_at: datetime,
        finished_at: datetime,
        order: Optional[Sequence[str]] = None,
    ) -> RunSummary:
        results = self._ordered(order)
        summary = RunSummary(
            run_id=self.run_id,
            base_url=self.config.base_url,
            store_slug=self.config.store_slug,
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=round((finished_at - started_at).total_seconds() * 1000, 3),
            total=len(results),
            passed=_count(results, Outcome.PASSED),
            failed=_count(results, Outcome.FAILED),
            skipped=_count(results, Outcome.SKIPPED),
            soft_failures=sum(len(result.soft_failures) for result in results),
            scenarios=results,
            events_file=str(self.artifacts.events_file),
            summary_file=str(self.artifacts.summary_file),
            junit_file=str(self.artifacts.junit_file),
        )
        self.artifacts.summary_file.write_text(summary.model_dump_json(indent=2), encoding="utf-8")
        self._write_junit(summary, self.artifacts.junit_file)
        return summary

    def _ordered(self, order: Optional[Sequence[str]]) -> list[ScenarioResult]:
        if not order:
            return list(self._results)
        position = {name: index for index, name in enumerate(order)}
        return sorted(self._results, key=lambda result: position.get(result.scenario, len(position)))

    @staticmethod
    def _write_junit(summary: RunSummary, junit_file: Path) -> None:
        suite = ET.Element(
            "testsuite",
            attrib={
                "name": "storefront-e2e",
                "tests": str(summary.total),
                "failures": str(summary.failed),
                "skipped": str(summary.skipped),
                "time": str(summary.duration_ms / 1000),
            },
        )
        for result in summary.scenarios:
            case = ET.SubElement(
                suite,
                "testcase",
                attrib={
                    "classname": result.tags[0] if result.tags else "e2e",
                    "name": result.scenario,
                    "time": str(result.duration_ms / 1000),
                },
            )
            if result.outcome == Outcome.SKIPPED:
                ET.SubElement(case, "skipped", attrib={"message": result.skip_reason or "precondition unmet"})
            elif result.outcome == Outcome.FAILED:
                failure = ET.SubElement(
                    case,
                    "failure",
                    attrib={
                        "message": result.error or "Scenario failed",
                        "type": result.error_type or "HarnessError",
                    },
                )
                failure.text = _failure_text(result)
            if result.soft_failures or result.variants:
                out = ET.SubElement(case, "system-out")
                lines = [f"variant: {name}" for name in result.variants]
                lines += [f"soft failure [{step.index}] {step.name}: {step.error}" for step in result.soft_failures]
                out.text = "\n".join(lines)
        tree = ET.ElementTree(suite)
        tree.write(junit_file, encoding="utf-8", xml_declaration=True)


def _failure_text(result: ScenarioResult) -> str:
    lines = []
    if result.failed_step:
        lines.append(f"step: {result.failed_step}")
    for key in ("selector", "pattern", "route", "url", "expected", "actual"):
        if key in result.detail:
            lines.append(f"{key}: {result.detail[key]}")
    if result.screenshot:
        lines.append(f"screenshot: {result.screenshot}")
    failed = next((step for step in result.steps if step.status == "failed"), None)
    if failed is not None and failed.traceback:
        lines.append(failed.traceback)
    return "\n".join(lines)


def _count(results: Sequence[ScenarioResult], outcome: Outcome) -> int:
    return len([result for result in results if result.outcome == outcome])


def _prepare_artifacts(output_root: Path, run_id: str) -> RunArtifacts:
    run_dir = output_root / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    return RunArtifacts(
        run_dir=run_dir,
        events_file=run_dir / "events.jsonl",
        summary_file=run_dir / "summary.json",
        junit_file=run_dir / "results.junit.xml",
        screenshots_dir=run_dir / "screenshots",
    )

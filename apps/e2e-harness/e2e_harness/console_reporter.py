"""Console reporter with environment detection for scenario run output."""

import os
import sys
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from .models import Outcome, RunSummary, ScenarioResult
from .output_config import OutputFormat

_STATUS = {
    Outcome.PASSED: ("✓ PASS", "green"),
    Outcome.FAILED: ("✗ FAIL", "red"),
    Outcome.SKIPPED: ("- SKIP", "yellow"),
}


class ConsoleReporter:
    """
    Console reporter that adapts to the environment.

    Interactive terminals get a live rich table; CI, pipes and redirects get plain lines;
    ``json`` prints only the final summary document.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self._detect_environment()

        if self.use_rich:
            self.console = Console()
            self._setup_rich_components()
        else:
            self.console = None

    def _detect_environment(self) -> None:
        if self.output_format == OutputFormat.RICH:
            self.use_rich = True
        elif self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            self.use_rich = False
        else:
            is_terminal = sys.stdout.isatty()
            is_ci = any([
                'CI' in os.environ,
                'GITHUB_ACTIONS' in os.environ,
                'JENKINS_HOME' in os.environ,
                'GITLAB_CI' in os.environ,
                'TRAVIS' in os.environ,
            ])
            self.use_rich = is_terminal and not is_ci

    @property
    def quiet(self) -> bool:
        return self.output_format == OutputFormat.JSON

    def _setup_rich_components(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=self.console,
        )
        self.progress_task: Optional[TaskID] = None
        self.live: Optional[Live] = None
        self.results_table: Optional[Table] = None

    def start_run(self, total: int, run_id: str, base_url: str) -> None:
        if self.use_rich:
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("Scenario", width=44)
            self.results_table.add_column("Status", width=10)
            self.results_table.add_column("Variant", width=20)
            self.results_table.add_column("Duration", justify="right", width=10)
            self.progress_task = self.progress.add_task(f"[cyan]Run {run_id} against {base_url}", total=total)
            self.live = Live(Group(self.progress, self.results_table), console=self.console, refresh_per_second=4)
            self.live.start()
        elif not self.quiet:
            print(f"Run {run_id} against {base_url}")
            print(f"Scenarios: {total}")
            print("-" * 80)

    def report_scenario_result(self, result: ScenarioResult) -> None:
        label, color = _STATUS[result.outcome]
        variant = ", ".join(result.variants)
        if self.use_rich:
            self.results_table.add_row(
                result.scenario,
                Text(label, style=color),
                variant,
                f"{result.duration_ms:.0f}ms",
            )
            if result.outcome == Outcome.FAILED and result.error:
                self.results_table.add_row(Text(f"  {result.failed_step}: {result.error}", style="red"), "", "", "")
            elif result.outcome == Outcome.SKIPPED and result.skip_reason:
                self.results_table.add_row(Text(f"  {result.skip_reason}", style="yellow"), "", "", "")
            for step in result.soft_failures:
                self.results_table.add_row(Text(f"  soft: {step.name}: {step.error}", style="yellow"), "", "", "")
            self.progress.update(self.progress_task, advance=1)
        elif not self.quiet:
            suffix = f" [{variant}]" if variant else ""
            print(f"{label} {result.scenario}{suffix} ({result.duration_ms:.0f}ms)")
            if result.outcome == Outcome.FAILED and result.error:
                print(f"  Failed step: {result.failed_step}")
                print(f"  Error: {result.error}")
                if result.screenshot:
                    print(f"  Screenshot: {result.screenshot}")
            elif result.outcome == Outcome.SKIPPED and result.skip_reason:
                print(f"  Skipped: {result.skip_reason}")
            for step in result.soft_failures:
                print(f"  Soft failure: {step.name}: {step.error}")

    def finish_run(self, summary: RunSummary) -> None:
        if self.quiet:
            print(summary.model_dump_json(indent=2))
            return
        if self.use_rich:
            if self.live:
                self.live.stop()

            summary_text = Text()
            summary_text.append(f"Total: {summary.total}  ", style="bold")
            summary_text.append(f"Passed: {summary.passed}  ", style="bold green")
            summary_text.append(f"Failed: {summary.failed}  ", style="bold red" if summary.failed else "bold green")
            summary_text.append(f"Skipped: {summary.skipped}  ", style="bold yellow")
            summary_text.append(f"Soft failures: {summary.soft_failures}  ", style="yellow")
            summary_text.append(f"Duration: {summary.duration_ms:.0f}ms", style="bold cyan")

            status = "✓ ALL SCENARIOS PASSED" if summary.failed == 0 else "✗ SOME SCENARIOS FAILED"
            self.console.print()
            self.console.print(Panel(
                summary_text,
                title=Text(status, style="bold green" if summary.failed == 0 else "bold red"),
                border_style="green" if summary.failed == 0 else "red",
            ))
            self.console.print(f"[dim]Artifacts: {summary.summary_file}[/]")
        else:
            print("-" * 80)
            print(
                f"Total: {summary.total} | Passed: {summary.passed} | Failed: {summary.failed} | "
                f"Skipped: {summary.skipped} | Soft failures: {summary.soft_failures} | "
                f"Duration: {summary.duration_ms:.0f}ms"
            )
            print("✓ ALL SCENARIOS PASSED" if summary.failed == 0 else "✗ SOME SCENARIOS FAILED")
            print(f"Artifacts: {summary.summary_file}")

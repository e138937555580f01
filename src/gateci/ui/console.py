"""Console output formatting utilities for gateci."""

from __future__ import annotations

import sys
import threading
from typing import Mapping, Optional

from ..model import JobResult, JobStatus, PipelineResult, StepRecord


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
                   and captured step output
        """
        self.debug = debug
        # jobs report from worker threads
        self._lock = threading.Lock()

    def _out(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        workflow: str,
        trigger: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._out(
            "\nRUN STARTED",
            f"Workflow: {workflow}",
            f"Trigger: {trigger}",
            f"Jobs: {job_count}",
            "",
        )

    def print_plan_stage(self, index: int, names: list[str]) -> None:
        self._out(f"Stage {index}: {', '.join(names)}")

    def print_plan_job(self, name: str, notes: list[str]) -> None:
        """Print job selection plan."""
        suffix = f" ({', '.join(notes)})" if notes else ""
        self._out(f"  {name}{suffix}")

    def print_job_start(self, name: str, runs_on: str) -> None:
        self._out(f"[{name}] JOB STARTED on {runs_on}")

    def print_step(self, job: str, name: str, command: str) -> None:
        self._out(f"[{job}] STEP: {name} ({command})")

    def print_step_result(self, record: StepRecord) -> None:
        if record.ok:
            if record.exit_code is not None:
                self._out(f"[{record.job}] STEP OK: {record.step} (exit={record.exit_code})")
            return
        code = "none" if record.exit_code is None else record.exit_code
        lines = [f"[{record.job}] STEP FAILED: {record.step} (exit={code})"]
        if record.error:
            lines.append(f"[{record.job}] Error: {record.error}")
        if self.debug:
            lines.extend(f"[{record.job}] | {ln}" for ln in record.stdout.splitlines())
            lines.extend(f"[{record.job}] ! {ln}" for ln in record.stderr.splitlines())
        elif record.stderr.strip():
            # first line only outside debug mode
            first = record.stderr.strip().splitlines()[0]
            lines.append(f"[{record.job}] stderr: {first}")
        self._out(*lines)

    def print_job_finished(self, result: JobResult) -> None:
        status = result.status.value
        if result.status is JobStatus.FAILURE and result.tolerant:
            status += " (continue-on-error)"
        self._out(f"[{result.job}] STATUS: {status} in {result.duration:.1f}s")

    def print_job_skipped(self, name: str, reason: str) -> None:
        """Print job skipped message."""
        self._out(f"[{name}] STATUS: skipped ({reason})")

    def print_results(self, results: Mapping[str, JobResult]) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for name, result in results.items():
            status_display = result.status.value.upper()
            if result.tolerant and result.status is not JobStatus.SUCCESS:
                status_display += " (tolerated)"
            if result.reason and result.status is JobStatus.SKIPPED:
                status_display += f" - {result.reason}"
            lines.append(f"  {name}: {status_display}")
        self._out(*lines)

    def print_pipeline_result(self, pipeline: PipelineResult, gate: Optional[str] = None) -> None:
        verdict = "SUCCESS" if pipeline.success else "FAILURE"
        lines = [f"\nPIPELINE: {verdict}"]
        if pipeline.aborted:
            lines.append("Run was aborted")
        if pipeline.blocking:
            lines.append(f"Blocking: {', '.join(pipeline.blocking)}")
        if pipeline.tolerated:
            lines.append(f"Tolerated: {', '.join(pipeline.tolerated)}")
        if gate is not None:
            lines.append(f"Gate {gate}: {pipeline.gate_status(gate).value}")
        self._out(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._out(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._out(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._out(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console

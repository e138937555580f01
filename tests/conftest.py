from __future__ import annotations

import threading
import time

import pytest

from gateci.model import StepKind, StepRecord
from gateci.ui.console import Console, set_console


class ScriptedRunner:
    """
    Fake execution collaborator.

    failing: job names (every command step fails) or (job, step) pairs.
    crash:   job names whose steps raise instead of returning a record.
    """

    def __init__(self, failing=(), crash=(), delay: float = 0.0, hook=None):
        self.failing = set(failing)
        self.crash = set(crash)
        self.delay = delay
        self.hook = hook
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def __call__(self, job, step, repo_root):
        if self.delay:
            time.sleep(self.delay)
        if self.hook is not None:
            self.hook(job, step)
        if job.name in self.crash:
            raise RuntimeError(f"runner crashed in {job.name}")
        with self._lock:
            self.calls.append((job.name, step.name))
        fails = step.kind is StepKind.COMMAND and (
            job.name in self.failing or (job.name, step.name) in self.failing
        )
        return StepRecord(
            job=job.name,
            step=step.name,
            command=step.command,
            ok=not fails,
            exit_code=None if step.kind is StepKind.SETUP else (1 if fails else 0),
            error=f"[{job.name}] step '{step.name}' failed (exit=1)" if fails else None,
        )

    def jobs_run(self) -> list[str]:
        return list(dict.fromkeys(name for name, _ in self.calls))


@pytest.fixture(autouse=True)
def console():
    c = Console(debug=False)
    set_console(c)
    return c


@pytest.fixture
def scripted():
    return ScriptedRunner


@pytest.fixture
def pipeline_jobs():
    """The six-job test pipeline from gateci_workflow.py."""
    import gateci_workflow

    return gateci_workflow.workflow()

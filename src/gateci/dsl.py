# src/gateci/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from . import settings
from .model import Job, Step, StepKind, Trigger


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None, timeout: float | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, kind=StepKind.COMMAND, run=cmd, cwd=cwd, timeout=timeout)


def checkout(name: str = "Checkout", uses: str = "actions/checkout@v4") -> Step:
    """Source checkout placeholder. Always succeeds, runs nothing."""
    return Step(name=name, kind=StepKind.SETUP, uses=uses)


def noop(name: str = "Done") -> Step:
    return Step(name=name, kind=StepKind.SETUP)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    needs: Optional[List[str]] = None,
    on: Optional[Iterable[Union[Trigger, str]]] = None,
    continue_on_error: bool = False,
    runs_on: str | None = None,  # defaults to GATECI_RUNS_ON
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [
            s if s.cwd is not None or s.kind is StepKind.SETUP else replace(s, cwd=cwd)
            for s in steps_final
        ]

    return Job(
        name=name,
        steps=tuple(steps_final),
        needs=tuple(needs or ()),
        on=None if on is None else tuple(Trigger.parse(t) for t in on),
        continue_on_error=continue_on_error,
        runs_on=runs_on or settings.RUNS_ON,
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._on: Optional[list[Trigger]] = None
        self._continue_on_error: bool = False
        self._runs_on: str = settings.RUNS_ON
        self._env: dict[str, str] = {}

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None, timeout: float | None = None):
        self._steps.append(sh(name, run, cwd=cwd, timeout=timeout))
        return self

    def add_step(self, step: Step):
        self._steps.append(step)
        return self

    def checkout(self, uses: str = "actions/checkout@v4"):
        self._steps.append(checkout(uses=uses))
        return self

    def on(self, *triggers: Union[Trigger, str]):
        self._on = [Trigger.parse(t) for t in triggers]
        return self

    def tolerate_failure(self, enabled: bool = True):
        self._continue_on_error = enabled
        return self

    def runs_on(self, label: str):
        self._runs_on = label
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def build(self) -> Job:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")

        return Job(
            name=self.name,
            steps=tuple(self._steps),
            needs=tuple(self._needs),
            on=None if self._on is None else tuple(self._on),
            continue_on_error=self._continue_on_error,
            runs_on=self._runs_on,
            env=dict(self._env),
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('test').define_step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("toolchain", ["msrv", "stable"]).jobs(
            lambda v: job(f"test-{v}", ci_step("Run Tests", "test", v))
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def jobs(self, builder: Callable[[Any], Job]) -> List[Job]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*jobs: Union[Job, List[Job]]) -> List[Job]:
    """
    Workflow definition helper. Matrix output (lists of jobs) is flattened.

        from gateci import wf, job, sh

        def workflow():
            return wf(
                job(...),
                matrix(...).jobs(...),
            )
    """
    out: List[Job] = []
    for item in jobs:
        if isinstance(item, Job):
            out.append(item)
        else:
            out.extend(item)
    return out


workflow = wf  # alias; avoid naming your own function workflow if you import this

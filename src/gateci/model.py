# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

DEFAULT_RUNS_ON = "ubuntu-22.04"


class Trigger(str, Enum):
    """External event that activates the pipeline."""
    PULL_REQUEST = "pull_request"
    MERGE_GROUP = "merge_group"

    @classmethod
    def parse(cls, text: "str | Trigger") -> "Trigger":
        if isinstance(text, Trigger):
            return text
        value = text.strip().lower().replace("-", "_")
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown trigger {text!r}. Known triggers: {known}") from None


class StepKind(str, Enum):
    COMMAND = "command"
    SETUP = "setup"


@dataclass(frozen=True)
class Step:
    """
    A single action inside a CI job.

    COMMAND steps run either a shell string (`run`) or a verbatim argv
    (`argv`). SETUP steps (checkout and similar) are placeholders that
    always succeed without running anything.
    """
    name: str
    kind: StepKind = StepKind.COMMAND
    run: str | None = None
    argv: Tuple[str, ...] | None = None
    uses: str | None = None
    cwd: str | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.kind is StepKind.COMMAND:
            if (self.run is None) == (self.argv is None):
                raise ValueError(f"Command step {self.name!r} needs exactly one of run/argv")
        elif self.run is not None or self.argv is not None:
            raise ValueError(f"Setup step {self.name!r} cannot carry a command")

    @property
    def command(self) -> str:
        if self.kind is StepKind.SETUP:
            return f"uses: {self.uses}" if self.uses else "(no-op)"
        if self.argv is not None:
            return " ".join(self.argv)
        return self.run or ""


@dataclass(frozen=True)
class Job:
    """
    A CI job: steps + dependencies + trigger and failure-tolerance metadata.

    `on=None` means the job is activated by every trigger.
    """
    name: str
    steps: Tuple[Step, ...]
    needs: Tuple[str, ...] = ()
    on: Tuple[Trigger, ...] | None = None
    continue_on_error: bool = False
    runs_on: str = DEFAULT_RUNS_ON
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # normalise list input; dedupe needs keeping first-seen order
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "needs", tuple(dict.fromkeys(self.needs)))
        if self.on is not None:
            object.__setattr__(self, "on", tuple(Trigger.parse(t) for t in self.on))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def tolerant(self) -> bool:
        return self.continue_on_error

    def activated_by(self, trigger: Trigger) -> bool:
        return self.on is None or trigger in self.on


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.FAILURE, JobStatus.SKIPPED)


@dataclass(frozen=True)
class StepRecord:
    """What happened when one step was invoked."""
    job: str
    step: str
    command: str
    ok: bool
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "command": self.command,
            "ok": self.ok,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
            "error": self.error,
        }


@dataclass(frozen=True)
class JobResult:
    job: str
    status: JobStatus
    tolerant: bool = False
    steps: Tuple[StepRecord, ...] = ()
    reason: Optional[str] = None
    duration: float = 0.0

    def __post_init__(self) -> None:
        if not self.status.terminal:
            raise ValueError(f"JobResult for {self.job!r} must be terminal, got {self.status.value}")
        object.__setattr__(self, "steps", tuple(self.steps))

    @property
    def blocking(self) -> bool:
        """True when this result stops dependents and fails the pipeline."""
        return not self.tolerant and self.status is not JobStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job,
            "status": self.status.value,
            "continue_on_error": self.tolerant,
            "reason": self.reason,
            "duration": round(self.duration, 3),
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass(frozen=True)
class PipelineResult:
    """Aggregate verdict over every JobResult of a run."""
    results: Mapping[str, JobResult]
    success: bool
    blocking: Tuple[str, ...] = ()
    tolerated: Tuple[str, ...] = ()
    aborted: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "results", MappingProxyType(dict(self.results)))

    def gate_status(self, name: str) -> JobStatus:
        try:
            return self.results[name].status
        except KeyError:
            raise KeyError(f"Gate job {name!r} did not run in this pipeline") from None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "success" if self.success else "failure",
            "aborted": self.aborted,
            "blocking": list(self.blocking),
            "tolerated": list(self.tolerated),
            "jobs": [r.to_dict() for r in self.results.values()],
        }

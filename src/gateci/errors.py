# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class PipelineDefinitionError(ValueError):
    """The job set cannot be scheduled. Raised before any job executes."""


@dataclass
class DuplicateJobError(PipelineDefinitionError):
    names: List[str]

    def __str__(self) -> str:
        return f"Duplicate job names found: {self.names}"


@dataclass
class UnknownDependencyError(PipelineDefinitionError):
    job: str
    dependency: str
    known: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"Job '{self.job}' needs missing job '{self.dependency}'. "
            f"Known jobs: {sorted(self.known)}"
        )


@dataclass
class CyclicDependencyError(PipelineDefinitionError):
    # names around the loop, first name repeated at the end
    cycle: List[str]

    def __str__(self) -> str:
        return "Dependency cycle: " + " -> ".join(self.cycle)


@dataclass
class StepExecutionFailure(Exception):
    """
    A step exited non-zero (or could not be started).

    Recorded on the JobResult; never raised to callers of aggregate().
    """
    job: str
    step: str
    command: str
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        code = "timeout" if self.exit_code is None else self.exit_code
        return f"[{self.job}] step '{self.step}' failed (exit={code}): {self.command}"


class PipelineAborted(Exception):
    """The pipeline was cancelled while a job was pending or running."""


class ConfigurationError(ValueError):
    """A GATECI_* environment variable holds an unusable value."""

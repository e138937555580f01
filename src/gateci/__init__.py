from .dsl import job, sh, checkout, noop, matrix, wf, workflow, JobBuilder, build
from .dag import activate, schedule, gate_candidates, Dag
from .runner import run, aggregate, run_pipeline, load_workflow, AbortSignal
from .model import Job, Step, StepKind, Trigger, JobStatus, JobResult, StepRecord, PipelineResult
from .errors import (
    PipelineDefinitionError,
    DuplicateJobError,
    UnknownDependencyError,
    CyclicDependencyError,
    StepExecutionFailure,
    PipelineAborted,
    ConfigurationError,
)
from .step_workflows.ci_script import ci_step

__all__ = [
    "job", "sh", "checkout", "noop", "matrix", "wf", "workflow", "JobBuilder", "build", "ci_step",
    "activate", "schedule", "gate_candidates", "Dag",
    "run", "aggregate", "run_pipeline", "load_workflow", "AbortSignal",
    "Job", "Step", "StepKind", "Trigger", "JobStatus", "JobResult", "StepRecord", "PipelineResult",
    "PipelineDefinitionError", "DuplicateJobError", "UnknownDependencyError",
    "CyclicDependencyError", "StepExecutionFailure", "PipelineAborted", "ConfigurationError",
]

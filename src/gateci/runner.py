# runner.py
from __future__ import annotations

import os
import runpy
import signal
import subprocess
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from . import settings
from .dag import Dag, activate, schedule
from .errors import PipelineAborted, StepExecutionFailure
from .model import Job, JobResult, JobStatus, PipelineResult, Step, StepKind, StepRecord, Trigger
from .ui.console import get_console

ABORTED = "aborted"
FAIL_FAST = "not started (fail-fast)"

StepRunner = Callable[[Job, Step, Path], StepRecord]


class AbortSignal:
    """
    Cooperative cancellation for a pipeline run.

    Once set: no new job starts, running jobs stop before their next step,
    and the default step runner kills its live subprocess.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise PipelineAborted()


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[Job]:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> List[Job]
      - JOBS = [Job, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"gateci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    jobs = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            jobs = globals_dict["workflow"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise TypeError(
                    "Your workflow() is being called with arguments (name collision with the helper). "
                    "Use the 'wf' helper instead: `from gateci import wf, job, sh` then "
                    "`def workflow(): return wf(job(...), job(...))`"
                ) from e
            raise
    elif "JOBS" in globals_dict:
        jobs = globals_dict["JOBS"]

    if not isinstance(jobs, list) or not all(isinstance(j, Job) for j in jobs):
        raise TypeError(
            "Workflow must return/define a List[Job]. "
            "Define workflow() -> List[Job] or JOBS = [Job, ...]."
        )

    return jobs


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _tail(text: str | None) -> str:
    return (text or "")[-settings.OUTPUT_TAIL:]


def _kill(proc: subprocess.Popen) -> None:
    """Kill the step's whole process group, not just the shell."""
    if os.name != "posix":
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def run_step(
    job: Job,
    step: Step,
    repo_root: Path,
    *,
    abort: Optional[AbortSignal] = None,
    default_timeout: float | None = None,
) -> StepRecord:
    """
    Default execution collaborator.

    SETUP steps succeed without running anything. COMMAND steps run via
    subprocess (argv verbatim, or a shell string) with output captured.
    """
    if step.kind is StepKind.SETUP:
        return StepRecord(job=job.name, step=step.name, command=step.command, ok=True)

    cwd = (repo_root / (step.cwd or ".")).resolve()
    if not cwd.exists():
        return StepRecord(
            job=job.name, step=step.name, command=step.command, ok=False,
            error=f"[{job.name}] step '{step.name}' cwd not found: {cwd}",
        )

    env = os.environ.copy()
    env.update(job.env)
    env["GATECI_JOB"] = job.name
    env["GATECI_RUNS_ON"] = job.runs_on

    timeout = step.timeout if step.timeout is not None else default_timeout
    started = time.monotonic()
    try:
        proc = subprocess.Popen(
            list(step.argv) if step.argv is not None else step.run,
            shell=step.argv is None,
            cwd=str(cwd),
            env=env,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        # e.g. ./ci.sh missing or not executable
        return StepRecord(
            job=job.name, step=step.name, command=step.command, ok=False,
            duration=time.monotonic() - started, error=f"{type(e).__name__}: {e}",
        )

    stdout = stderr = ""
    timed_out = False
    while True:
        try:
            stdout, stderr = proc.communicate(timeout=0.2)
            break
        except subprocess.TimeoutExpired:
            if abort is not None and abort.is_set():
                _kill(proc)
                proc.communicate()
                raise PipelineAborted()
            if timeout is not None and time.monotonic() - started > timeout:
                _kill(proc)
                stdout, stderr = proc.communicate()
                timed_out = True
                break

    duration = time.monotonic() - started
    exit_code = None if timed_out else proc.returncode
    if exit_code == 0:
        return StepRecord(
            job=job.name, step=step.name, command=step.command, ok=True, exit_code=0,
            stdout=_tail(stdout), stderr=_tail(stderr), duration=duration,
        )

    failure = StepExecutionFailure(
        job=job.name,
        step=step.name,
        command=step.command,
        exit_code=exit_code,
        stdout=_tail(stdout),
        stderr=_tail(stderr),
    )
    error = str(failure)
    if timed_out:
        error += f" (timed out after {timeout}s)"
    return StepRecord(
        job=job.name, step=step.name, command=step.command, ok=False, exit_code=exit_code,
        stdout=failure.stdout, stderr=failure.stderr, duration=duration, error=error,
    )


def _run_job(job: Job, repo_root: Path, step_runner: StepRunner, abort: AbortSignal) -> JobResult:
    """Run steps in order; the first failing step ends the job."""
    console = get_console()
    console.print_job_start(job.name, job.runs_on)
    started = time.monotonic()
    records: List[StepRecord] = []
    status = JobStatus.SUCCESS
    reason: Optional[str] = None

    try:
        for step in job.steps:
            abort.check()
            console.print_step(job.name, step.name, step.command)
            record = step_runner(job, step, repo_root)
            records.append(record)
            try:
                console.print_step_result(record)
            except Exception as e:
                # reporting problems never change the recorded outcome
                console.print_exception(e)
            if not record.ok:
                status = JobStatus.FAILURE
                reason = record.error or f"step '{step.name}' failed"
                break
    except PipelineAborted:
        status = JobStatus.SKIPPED
        reason = ABORTED

    return JobResult(
        job=job.name,
        status=status,
        tolerant=job.tolerant,
        steps=tuple(records),
        reason=reason,
        duration=time.monotonic() - started,
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run(
    dag: Dag,
    *,
    step_runner: Optional[StepRunner] = None,
    max_workers: int | None = None,
    abort: Optional[AbortSignal] = None,
    repo_root: str | Path = ".",
    fail_fast: bool = False,
    step_timeout: float | None = None,
    on_transition: Optional[Callable[[str, JobStatus], None]] = None,
) -> Dict[str, JobResult]:
    """
    Execute jobs respecting the DAG's partial order.

    A job whose non-tolerant dependency failed (or was skipped) is skipped
    without running; a tolerant dependency's failure is absorbed. Results
    are published once per job by this (coordinating) thread only.

    on_transition(name, status) sees Pending -> Running -> terminal, or
    Pending -> Skipped, for every job.
    """
    console = get_console()
    repo_root_p = Path(repo_root).resolve()
    abort = abort or AbortSignal()
    if step_runner is None:
        step_runner = partial(
            run_step,
            abort=abort,
            default_timeout=step_timeout if step_timeout is not None else settings.step_timeout(),
        )
    if max_workers is None:
        max_workers = settings.default_workers()

    indeg = dict(dag.indegree)
    ready = deque(dag.roots())
    results: Dict[str, JobResult] = {}
    in_flight: Dict[Future, str] = {}
    halted = False

    def publish(result: JobResult) -> None:
        nonlocal halted
        if result.job in results:
            raise RuntimeError(f"Result for job '{result.job}' already published")
        results[result.job] = result
        if on_transition is not None:
            on_transition(result.job, result.status)
        if fail_fast and result.status is JobStatus.FAILURE and not result.tolerant:
            halted = True
        # unlock dependents once every dep is terminal
        for nxt in sorted(dag.dependents[result.job]):
            indeg[nxt] -= 1
            if indeg[nxt] == 0:
                ready.append(nxt)

    def skip(job: Job, reason: str) -> None:
        console.print_job_skipped(job.name, reason)
        publish(JobResult(job=job.name, status=JobStatus.SKIPPED, tolerant=job.tolerant, reason=reason))

    def drive(pool: ThreadPoolExecutor) -> None:
        while ready or in_flight:
            # schedule all currently ready
            while ready:
                job = dag.jobs[ready.popleft()]
                if abort.is_set():
                    skip(job, ABORTED)
                    continue
                blockers = [d for d in job.needs if results[d].blocking]
                if blockers:
                    skip(job, f"upstream failed: {', '.join(blockers)}")
                    continue
                if halted:
                    skip(job, FAIL_FAST)
                    continue
                if on_transition is not None:
                    on_transition(job.name, JobStatus.RUNNING)
                fut = pool.submit(_run_job, job, repo_root_p, step_runner, abort)
                in_flight[fut] = job.name

            if not in_flight:
                break

            # wait for completions, then loop to schedule newly-ready jobs
            done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)

            for fut in done:
                name = in_flight[fut]
                if name in results:
                    # published before an interrupt
                    del in_flight[fut]
                    continue
                job = dag.jobs[name]
                try:
                    result = fut.result()
                except Exception as e:
                    # the step runner itself blew up; record it, don't crash the run
                    console.print_exception(e)
                    result = JobResult(
                        job=name,
                        status=JobStatus.FAILURE,
                        tolerant=job.tolerant,
                        reason=f"{type(e).__name__}: {e}",
                    )
                if result.reason == ABORTED:
                    console.print_job_skipped(name, ABORTED)
                else:
                    console.print_job_finished(result)
                publish(result)
                del in_flight[fut]

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        while True:
            try:
                drive(pool)
                break
            except KeyboardInterrupt:
                console.print_info("\nInterrupted, aborting pipeline")
                abort.set()

    # jobs an interrupt left unpublished
    for name, job in dag.jobs.items():
        if name not in results:
            skip(job, ABORTED)

    # keep declaration order for reporting
    return {name: results[name] for name in dag.jobs}


def aggregate(results: Mapping[str, JobResult]) -> PipelineResult:
    """
    Fold job results into the pipeline verdict.

    Failure iff some non-tolerant job failed or was skipped. Pure; an empty
    mapping is vacuously successful.
    """
    blocking = tuple(name for name, r in results.items() if r.blocking)
    tolerated = tuple(
        name for name, r in results.items()
        if r.tolerant and r.status is not JobStatus.SUCCESS
    )
    aborted = any(r.reason == ABORTED for r in results.values())
    return PipelineResult(
        results=results,
        success=not blocking,
        blocking=blocking,
        tolerated=tolerated,
        aborted=aborted,
    )


def run_pipeline(
    jobs: Iterable[Job],
    trigger: Union[Trigger, str],
    **run_kwargs,
) -> PipelineResult:
    """activate -> schedule -> run -> aggregate."""
    active = activate(jobs, trigger)
    dag = schedule(active)
    return aggregate(run(dag, **run_kwargs))

# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from gateci import settings
from gateci.dag import activate, gate_candidates, schedule
from gateci.errors import (
    ConfigurationError,
    CyclicDependencyError,
    PipelineDefinitionError,
    UnknownDependencyError,
)
from gateci.model import JobStatus, Trigger
from gateci.runner import AbortSignal, aggregate, load_workflow, run
from gateci.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "gateci_workflow.py"

TRIGGER_CHOICES = [t.value for t in Trigger]


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        return [default_workflow]

    for path in current_dir.glob("*_workflow.py"):
        workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument, GATECI_WORKFLOW or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    workflow_arg = workflow_arg or settings.WORKFLOW
    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  gateci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                f"  {DEFAULT_WORKFLOW}",
                "  *_workflow.py",
            ],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}\n\nOr specify a workflow explicitly:\n  gateci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  gateci run --workflow {workflow_files[0]}",
        )
        sys.exit(1)

    return workflow_files[0]


def _load_jobs(workflow: str | None):
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return workflow_path, load_workflow(workflow_path)
    except Exception as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if console.debug:
            console.print_exception(e)
        sys.exit(1)


def _report_definition_error(e: PipelineDefinitionError) -> None:
    console = get_console()
    if isinstance(e, CyclicDependencyError):
        suggestion = "Remove one of the needs edges so the jobs form a DAG."
    elif isinstance(e, UnknownDependencyError):
        suggestion = (
            f"Declare a job named '{e.dependency}' or drop it from the needs of '{e.job}'. "
            "Jobs filtered out by the trigger count as missing."
        )
    else:
        suggestion = "Give every job a unique name."
    console.print_error("Invalid pipeline definition", str(e), suggestion=suggestion)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and captured step output)",
)
@click.pass_context
def cli(ctx, debug):
    """gateci: trigger-aware, dependency-gated CI pipeline runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command(name="run")
@click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)",
)
@click.option(
    "--trigger",
    type=click.Choice(TRIGGER_CHOICES),
    default=Trigger.PULL_REQUEST.value,
    show_default=True,
    help="Event that activates the pipeline",
)
@click.option("--workers", default=None, type=int, help="Number of parallel workers")
@click.option("--fail-fast/--no-fail-fast", default=False, help="Stop starting new jobs after a blocking failure")
@click.option("--step-timeout", default=None, type=float, help="Default per-step timeout in seconds")
@click.option("--gate", default=None, help="Job whose terminal state decides the exit code")
@click.option("--report", default=None, type=click.Path(dir_okay=False), help="Write a JSON report here")
def run_cmd(workflow, trigger, workers, fail_fast, step_timeout, gate, report):
    """Run a gateci workflow for a trigger."""
    console = get_console()
    workflow_path, jobs = _load_jobs(workflow)

    try:
        active = activate(jobs, trigger)
        dag = schedule(active)
    except PipelineDefinitionError as e:
        _report_definition_error(e)
        sys.exit(1)

    if gate is not None and gate not in dag.jobs:
        console.print_error(
            "Unknown gate job",
            f"Gate '{gate}' is not among the jobs activated by {trigger}.",
            details=[", ".join(dag.jobs) or "(no jobs)"],
        )
        sys.exit(1)

    try:
        max_workers = workers if workers is not None else settings.default_workers()
        default_timeout = step_timeout if step_timeout is not None else settings.step_timeout()
    except ConfigurationError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion="Unset the variable or pass --workers / --step-timeout instead.",
        )
        sys.exit(1)

    console.print_run_started(
        workflow=workflow_path.name,
        trigger=trigger,
        job_count=len(dag),
    )

    abort = AbortSignal()
    try:
        results = run(
            dag,
            max_workers=max_workers,
            abort=abort,
            fail_fast=fail_fast,
            step_timeout=default_timeout,
        )
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    pipeline = aggregate(results)
    console.print_results(pipeline.results)
    console.print_pipeline_result(pipeline, gate=gate)

    if report:
        payload = pipeline.to_dict()
        payload["workflow"] = workflow_path.name
        payload["trigger"] = trigger
        payload["gate"] = gate
        Path(report).write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        console.print_debug(f"Report written to {report}")

    if pipeline.aborted:
        sys.exit(130)
    if gate is not None:
        sys.exit(0 if pipeline.gate_status(gate) is JobStatus.SUCCESS else 1)
    sys.exit(0 if pipeline.success else 1)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path")
@click.option(
    "--trigger",
    type=click.Choice(TRIGGER_CHOICES),
    default=Trigger.PULL_REQUEST.value,
    show_default=True,
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the plan as JSON")
def plan(workflow, trigger, as_json):
    """Show which jobs a trigger activates and in what stages they run."""
    console = get_console()
    _workflow_path, jobs = _load_jobs(workflow)

    try:
        dag = schedule(activate(jobs, trigger))
    except PipelineDefinitionError as e:
        _report_definition_error(e)
        sys.exit(1)

    levels = dag.levels()
    gates = gate_candidates(dag)

    if as_json:
        payload = {
            "trigger": trigger,
            "stages": levels,
            "gates": gates,
            "jobs": {
                name: {
                    "needs": list(j.needs),
                    "continue_on_error": j.continue_on_error,
                    "runs_on": j.runs_on,
                    "steps": [s.command for s in j.steps],
                }
                for name, j in dag.jobs.items()
            },
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not levels:
        console.print_info(f"No jobs activated by {trigger}")
        return

    console.print_header(f"Plan for {trigger}")
    for idx, level in enumerate(levels, start=1):
        console.print_plan_stage(idx, level)
        for name in level:
            j = dag.jobs[name]
            notes = []
            if j.needs:
                notes.append(f"needs {', '.join(j.needs)}")
            if j.continue_on_error:
                notes.append("continue-on-error")
            if name in gates:
                notes.append("gate")
            console.print_plan_job(name, notes)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file path")
def check(workflow):
    """Validate the workflow definition without running anything."""
    console = get_console()
    workflow_path, jobs = _load_jobs(workflow)

    try:
        dag = schedule(jobs)
        for trigger in Trigger:
            schedule(activate(jobs, trigger))
    except PipelineDefinitionError as e:
        _report_definition_error(e)
        sys.exit(1)

    console.print_info(f"{workflow_path.name}: {len(dag)} job(s), {len(dag.levels())} stage(s), OK")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

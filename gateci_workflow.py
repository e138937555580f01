# gateci_workflow.py
# Test pipeline: MSRV check/test, clippy, stable tests gated by "tests";
# nightly tests run alongside but may fail without blocking the merge.
from __future__ import annotations

from gateci.dsl import wf, job, checkout, noop, matrix
from gateci.step_workflows.ci_script import ci_step

TRIGGERS = ["pull_request", "merge_group"]


def _tests(toolchain: str, *, continue_on_error: bool = False):
    return job(
        f"test-{toolchain}",
        checkout(),
        ci_step(f"Run Tests {toolchain}", "test", toolchain),
        on=TRIGGERS,
        continue_on_error=continue_on_error,
    )


def workflow():
    return wf(
        # Gate job: the merge queue only looks at this one
        job(
            "tests",
            noop(),
            needs=["check-msrv", "test-msrv", "test-stable", "clippy"],
            on=TRIGGERS,
        ),

        job(
            "check-msrv",
            checkout(),
            ci_step("Run Checks MSRV", "check", "msrv"),
            on=TRIGGERS,
        ),

        job(
            "clippy",
            checkout(),
            ci_step("Run Clippy", "clippy"),
            on=TRIGGERS,
        ),

        matrix("toolchain", ["msrv", "stable"]).jobs(_tests),

        _tests("nightly", continue_on_error=True),
    )

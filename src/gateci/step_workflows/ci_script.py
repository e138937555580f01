# step_workflows/ci_script.py
from __future__ import annotations

import shlex

from ..model import Step, StepKind

DEFAULT_SCRIPT = "./ci.sh"


# ---------------------------------------------------------------------
# CI script step helper
# ---------------------------------------------------------------------

def ci_step(
    name: str,
    subcommand: str,
    argument: str | None = None,
    *,
    script: str = DEFAULT_SCRIPT,
    cwd: str | None = None,
    timeout: float | None = None,
) -> Step:
    """
    Create a step that invokes `<script> <subcommand> [argument]`.

    Arguments are passed verbatim as an argv (no shell), e.g.
    ci_step("Run Checks MSRV", "check", "msrv") -> ./ci.sh check msrv
    """
    if not subcommand:
        raise ValueError(f"ci_step({name!r}) needs a subcommand")

    argv = [script, subcommand]
    if argument:
        argv.append(argument)
    return Step(name=name, kind=StepKind.COMMAND, argv=tuple(argv), cwd=cwd, timeout=timeout)


def parse_ci_command(cmd: str, *, name: str | None = None) -> Step:
    """Turn a `./ci.sh test stable` style string into an argv step."""
    parts = shlex.split(cmd)
    if len(parts) < 2:
        raise ValueError(f"Expected '<script> <subcommand> [argument]', got: {cmd!r}")
    if len(parts) > 3:
        raise ValueError(f"Too many arguments for a CI script step: {cmd!r}")
    script, subcommand, *rest = parts
    return ci_step(name or cmd, subcommand, rest[0] if rest else None, script=script)

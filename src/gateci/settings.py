from __future__ import annotations
import os

from .errors import ConfigurationError
from .model import DEFAULT_RUNS_ON


def _optional(name: str, cast, kind: str):
    # read on each call, never at import
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be {kind}, got {raw!r}") from None


WORKFLOW = os.environ.get("GATECI_WORKFLOW") or None
RUNS_ON = os.environ.get("GATECI_RUNS_ON", DEFAULT_RUNS_ON)
OUTPUT_TAIL = 4000


def workers() -> int | None:
    return _optional("GATECI_WORKERS", int, "an integer")


def step_timeout() -> float | None:
    return _optional("GATECI_STEP_TIMEOUT", float, "a number of seconds")


def default_workers() -> int:
    configured = workers()
    if configured is not None:
        return max(1, configured)
    c = os.cpu_count() or 2
    return max(1, c - 1)

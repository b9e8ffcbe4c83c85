"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors map to exit code 1.  No tracebacks are printed.
    """
    from shape_provisioner.config.loader import ConfigError
    from shape_provisioner.engine.errors import (
        ConfigRecordError,
        CycleDetectedError,
        DuplicateNameError,
        RunCanceled,
        StateLockError,
        UnknownDependencyError,
        UnknownResourceKindError,
        UnknownTargetError,
    )
    from shape_provisioner.engine.types import RunReport

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(
        exc,
        CycleDetectedError | DuplicateNameError | UnknownDependencyError | UnknownResourceKindError,
    ):
        _err(f"Invalid resource graph: {exc}", fg=fg)
    elif isinstance(exc, UnknownTargetError):
        _err(f"Invalid --target: {exc}", fg=fg)
    elif isinstance(exc, StateLockError):
        _err(f"Record locked: {exc}", fg=fg)
    elif isinstance(exc, ConfigRecordError):
        _err(f"Config record error: {exc}", fg=fg)
    elif isinstance(exc, RunCanceled):
        _err("Run canceled.", fg=fg)
        s = exc.report.summary()
        if isinstance(exc.report, RunReport):
            done = [(s["created"], "created"), (s["no-op"], "unchanged"), (s["failed"], "failed")]
        else:
            done = [(s["deleted"], "deleted"), (s["failed"], "failed")]
        parts = [f"{n} {verb}" for n, verb in done if n]
        if parts:
            _err(f"  Partial result: {', '.join(parts)}.", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1

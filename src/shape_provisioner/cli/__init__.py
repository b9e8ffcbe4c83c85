"""``shape-provisioner`` command line: plan, apply, teardown and node checks."""

from __future__ import annotations

import logging
import os
import sys

import typer

from shape_provisioner import __version__

app = typer.Typer(
    name="shape-provisioner",
    help="Bring up, inspect and tear down a Shape Network node on AKS.",
    no_args_is_help=True,
    add_completion=False,
)

# -v / -vv; anything beyond -vv stays at DEBUG.
_VERBOSITY = (logging.INFO, logging.DEBUG)
_LOG_ENV = "SHAPE_LOG"
_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_LOG_DATEFMT = "%H:%M:%S"


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"shape-provisioner {__version__}")
        raise typer.Exit


def _level_from_env() -> int | None:
    name = os.environ.get(_LOG_ENV, "").strip().upper()
    if not name:
        return None
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        typer.echo(f"Ignoring {_LOG_ENV}={name}: not a logging level, using INFO.", err=True)
        return logging.INFO
    return level


def _configure_logging(verbose: int) -> None:
    """Route ``shape_provisioner`` log records to stderr.

    ``SHAPE_LOG`` (a level name) overrides ``-v``. With neither, logging is
    left alone and only command output is printed.
    """
    level = _level_from_env()
    if level is None and verbose > 0:
        level = _VERBOSITY[min(verbose, len(_VERBOSITY)) - 1]
    if level is None:
        return
    # Third-party loggers stay at WARNING; only ours follows the chosen level.
    logging.basicConfig(
        level=logging.WARNING,
        format=_LOG_FORMAT,
        datefmt=_LOG_DATEFMT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("shape_provisioner").setLevel(level)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Print the installed version.",
        callback=_show_version,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Log progress to stderr; repeat (-vv) for az/kubectl/helm command lines.",
    ),
) -> None:
    """Reconcile the Azure and Kubernetes resources behind a Shape Network node."""
    _ = version
    _configure_logging(verbose)


# Commands import ``app`` from this module, so they register last.
from shape_provisioner.cli import commands as _commands  # noqa: E402, F401

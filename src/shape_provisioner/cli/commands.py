"""CLI command implementations."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal, TypeVar

import typer

from shape_provisioner.cli import app
from shape_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from collections.abc import Callable

    from shape_provisioner.config.schema import Config
    from shape_provisioner.engine.engine import ProgressCallback

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the deployment file."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]

Targets = Annotated[
    list[str] | None,
    typer.Option(
        "--target",
        "-t",
        help="Limit the run to this resource and the resources it is tied to. Repeatable.",
    ),
]

_DEFAULT_CONFIG = Path("shape-provisioner.yaml")

T = TypeVar("T")


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


def _run_with_progress(
    run: Callable[[Config, ProgressCallback], T],
    cfg: Config,
    *,
    total: int,
    label: str,
    verb: str,
    color: bool,
) -> T:
    """Run *run* with a Rich progress bar and per-resource status lines."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    console = Console(no_color=not color)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(label, total=total)

        def on_progress(name: str, event: Literal["start", "done"]) -> None:
            if event == "start":
                progress.update(task, description=f"{name}: {verb}...")
            elif event == "done":
                progress.advance(task)

        return run(cfg, on_progress)


def _confirm(message: str, *, auto_approve: bool, canceled: str) -> None:
    if auto_approve:
        return
    try:
        typer.confirm(message, abort=True)
    except typer.Abort as e:
        typer.echo(canceled, err=True)
        raise typer.Exit(1) from e


@app.command()
def plan(
    config: ConfigPath = _DEFAULT_CONFIG,
    target: Targets = None,
    no_color: NoColor = False,
) -> None:
    """Show what apply would do, probing current state without changing it.

    Exits with code 2 when at least one resource would be created.
    """
    from shape_provisioner.cli.formatting import (
        format_plan,
        format_plan_summary,
        has_pending_creates,
        plan_summary,
    )
    from shape_provisioner.config import load
    from shape_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        entries = plan_fn(cfg, target)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_plan(entries, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_summary(entries), color=color))

    if has_pending_creates(entries):
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    config: ConfigPath = _DEFAULT_CONFIG,
    target: Targets = None,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Reconcile the declared resources, creating what is missing."""
    from shape_provisioner.cli.formatting import (
        format_plan,
        format_plan_summary,
        format_run_report,
        format_run_summary,
        has_actionable_changes,
        plan_summary,
    )
    from shape_provisioner.config import apply, load
    from shape_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        entries = plan_fn(cfg, target)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if has_actionable_changes(entries):
        typer.echo(format_plan(entries, color=color))
        typer.echo()
        typer.echo(format_plan_summary(plan_summary(entries), color=color))
        typer.echo()
        _confirm(
            "Do you want to apply these changes?",
            auto_approve=auto_approve,
            canceled="Apply canceled.",
        )

    try:
        report = _run_with_progress(
            lambda c, p: apply(c, target, progress=p),
            cfg,
            total=len(entries),
            label="Applying",
            verb="Reconciling",
            color=color,
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_run_report(report, color=color))
    typer.echo()
    typer.echo(format_run_summary(report, color=color))
    raise typer.Exit(int(report.exit_code))


@app.command()
def teardown(
    config: ConfigPath = _DEFAULT_CONFIG,
    target: Targets = None,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Delete the declared resources, dependents first."""
    from shape_provisioner.cli.formatting import (
        format_teardown_plan,
        format_teardown_report,
        format_teardown_summary,
    )
    from shape_provisioner.config import load, teardown_order
    from shape_provisioner.config import teardown as teardown_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        order = teardown_order(cfg, target)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not order:
        typer.echo("No resources to destroy.")
        raise typer.Exit(0)

    typer.echo(format_teardown_plan(order, color=color))
    typer.echo()
    _confirm(
        "Do you really want to destroy these resources?"
        if target
        else "Do you really want to destroy all resources?",
        auto_approve=auto_approve,
        canceled="Teardown canceled.",
    )

    try:
        report = _run_with_progress(
            lambda c, p: teardown_fn(c, target, progress=p),
            cfg,
            total=len(order),
            label="Destroying",
            verb="Deleting",
            color=color,
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_teardown_report(report, color=color))
    typer.echo()
    typer.echo(format_teardown_summary(report, color=color))
    raise typer.Exit(int(report.exit_code))


@app.command()
def validate(
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Validate the deployment file and its dependency graph."""
    from shape_provisioner.cli.formatting import styler
    from shape_provisioner.config import load
    from shape_provisioner.config import validate as validate_fn

    color = _use_color(no_color)
    style = styler(color)
    try:
        cfg = load(config)
        errors = validate_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if errors:
        typer.echo(style("Validation failed:", fg="red"), err=True)
        for e in errors:
            typer.echo(style(f"  - {e}", fg="red"), err=True)
        raise typer.Exit(1)

    typer.echo(style("Configuration is valid.", fg="green"))


@app.command()
def show(
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Print the config record written by the last successful apply."""
    from shape_provisioner.cli.formatting import format_record
    from shape_provisioner.config import load, read_record

    color = _use_color(no_color)
    try:
        cfg = load(config)
        record = read_record(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not record:
        typer.echo(f"No config record at {cfg.record_path}.")
        return
    typer.echo(format_record(record))


def _parse_assignments(assignments: list[str]) -> dict[str, str]:
    values: dict[str, str] = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="KEY=VALUE")
        values[key.strip()] = value
    return values


@app.command(name="set")
def set_cmd(
    assignments: Annotated[
        list[str],
        typer.Argument(help="Record values to store, as KEY=VALUE.", metavar="KEY=VALUE"),
    ],
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Store values in the config record for resources to reference as ${KEY}."""
    from shape_provisioner.cli.formatting import styler
    from shape_provisioner.config import load, set_values

    color = _use_color(no_color)
    values = _parse_assignments(assignments)
    try:
        cfg = load(config)
        set_values(cfg, values)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    style = styler(color)
    typer.echo(style(f"Set {', '.join(sorted(values))} in {cfg.record_path}.", fg="green"))


def _parse_chain_id(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value, 0)
    except ValueError as e:
        raise typer.BadParameter(f"not an integer: {value!r}", param_hint="--chain-id") from e


@app.command()
def health(
    config: ConfigPath = _DEFAULT_CONFIG,
    domain: Annotated[
        str | None,
        typer.Option("--domain", help="Override the domain (default: DNS_FQDN from the record)."),
    ] = None,
    ip: Annotated[
        str | None,
        typer.Option("--ip", help="Override the IP (default: STATIC_IP from the record)."),
    ] = None,
    chain_id: Annotated[
        str | None,
        typer.Option("--chain-id", help="Expected chain id, decimal or 0x-prefixed hex."),
    ] = None,
    insecure: Annotated[
        bool,
        typer.Option("--insecure", help="Do not verify TLS certificates."),
    ] = False,
    timeout: Annotated[
        float,
        typer.Option("--timeout", help="Per-request timeout in seconds."),
    ] = 30.0,
    no_color: NoColor = False,
) -> None:
    """Probe the deployed node's public endpoints."""
    from shape_provisioner.cli.formatting import format_health
    from shape_provisioner.config import load, read_record
    from shape_provisioner.health import resolve_targets, run_checks

    color = _use_color(no_color)
    expected = _parse_chain_id(chain_id)
    try:
        record = read_record(load(config)) if config.is_file() else {}
        target_domain, target_ip = resolve_targets(record, domain=domain, ip=ip)
        report = run_checks(
            target_domain,
            target_ip,
            expected_chain_id=expected,
            timeout=timeout,
            verify=not insecure,
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_health(report, color=color))
    raise typer.Exit(int(report.exit_code))

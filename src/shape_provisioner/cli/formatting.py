"""Plan, run and teardown output rendering."""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

import typer

from shape_provisioner.engine.types import Action, ExitCode, Outcome, TeardownOutcome
from shape_provisioner.resources.base import Criticality

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from shape_provisioner.engine.types import PlanEntry, RunReport, TeardownReport
    from shape_provisioner.health import HealthReport


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    desc: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "will be created"),
    "wait": _ActionStyle("yellow", "~", "Waiting", "is being created, will wait"),
    "unknown": _ActionStyle("red", "?", "Probing", "could not be probed"),
    "no-op": _ActionStyle("bright_black", " ", "Checking", "is up-to-date"),
}

_OUTCOME_COLORS: dict[str, str] = {
    Outcome.CREATED.value: "green",
    Outcome.NOOP.value: "bright_black",
    Outcome.FAILED.value: "red",
    Outcome.SKIPPED.value: "yellow",
    TeardownOutcome.DELETED.value: "red",
    TeardownOutcome.ALREADY_ABSENT.value: "bright_black",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def has_pending_creates(entries: list[PlanEntry]) -> bool:
    """Return True if applying would create at least one resource."""
    return any(e.action == Action.CREATE for e in entries)


def has_actionable_changes(entries: list[PlanEntry]) -> bool:
    """Return True if any resource is not already up-to-date."""
    return any(e.action != Action.NOOP for e in entries)


def format_plan_entry(entry: PlanEntry, *, color: bool = True) -> str:
    style = styler(color)
    s = _ACTION_STYLES[entry.action.value]
    line = f"  {s.symbol} {entry.name} ({entry.kind}) {s.desc}"
    if entry.detail:
        line += f" [{entry.detail}]"
    if entry.criticality == Criticality.ADVISORY:
        line += " (advisory)"
    return style(line, fg=s.color)


def format_plan(entries: list[PlanEntry], *, color: bool = True) -> str:
    """Render every plan entry, in creation order."""
    if not entries:
        return "No resources declared."
    return "\n".join(format_plan_entry(e, color=color) for e in entries)


def plan_summary(entries: list[PlanEntry]) -> dict[str, int]:
    """Count plan entries by action."""
    summary = {a.value: 0 for a in Action}
    for e in entries:
        summary[e.action.value] += 1
    return summary


def format_plan_summary(summary: Mapping[str, int], *, color: bool = True) -> str:
    """Render ``Plan: 2 to create, 0 to wait for, 5 up-to-date.``"""
    style = styler(color)
    parts = [
        f"{summary.get('create', 0)} to create",
        f"{summary.get('wait', 0)} to wait for",
        f"{summary.get('no-op', 0)} up-to-date",
    ]
    unknown = summary.get("unknown", 0)
    if unknown:
        parts.append(style(f"{unknown} unknown", fg="red"))
    return f"Plan: {', '.join(parts)}."


def format_teardown_plan(order: list[str], *, color: bool = True) -> str:
    style = styler(color)
    if not order:
        return "No resources declared."
    return "\n".join(style(f"  - {name} will be destroyed", fg="red") for name in order)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def format_run_report(report: RunReport, *, color: bool = True) -> str:
    """Per-resource outcome lines, followed by the halt reason if any."""
    style = styler(color)
    lines: list[str] = []
    for r in report.results:
        line = f"  {r.name}: {r.outcome.value}"
        if r.error:
            line += f" ({r.error})"
        elif r.skipped_because:
            line += f" (after {r.skipped_because} failed)"
        lines.append(style(line, fg=_OUTCOME_COLORS[r.outcome.value]))
    if report.halted_on:
        lines.append("")
        lines.append(style(f"Halted on critical resource {report.halted_on}.", fg="red"))
        if report.dependents_of_halt:
            lines.append(f"  Blocked dependents: {', '.join(report.dependents_of_halt)}")
    return "\n".join(lines)


def format_run_summary(report: RunReport, *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 created, 5 no-op, 0 failed, 0 skipped.``"""
    style = styler(color)
    s = report.summary()
    counts = (
        f"{s['created']} created, {s['no-op']} no-op, {s['failed']} failed, "
        f"{s['skipped']} skipped"
    )
    match report.exit_code:
        case ExitCode.SUCCESS:
            header = style("Apply complete!", fg="green", bold=True)
        case ExitCode.ADVISORY_WARNINGS:
            header = style("Apply complete with warnings.", fg="yellow", bold=True)
        case _:
            header = style("Apply failed.", fg="red", bold=True)
    return f"{header} Resources: {counts}."


def format_teardown_report(report: TeardownReport, *, color: bool = True) -> str:
    style = styler(color)
    lines = []
    for r in report.results:
        line = f"  {r.name}: {r.outcome.value}"
        if r.error:
            line += f" ({r.error})"
        lines.append(style(line, fg=_OUTCOME_COLORS.get(r.outcome.value, "red")))
    if report.removed_keys:
        lines.append("")
        lines.append(f"Removed from config record: {', '.join(report.removed_keys)}")
    return "\n".join(lines)


def format_teardown_summary(report: TeardownReport, *, color: bool = True) -> str:
    style = styler(color)
    s = report.summary()
    counts = f"{s['deleted']} deleted, {s['already-absent']} already absent, {s['failed']} failed"
    if report.exit_code == ExitCode.SUCCESS:
        header = style("Teardown complete!", fg="green", bold=True)
    else:
        header = style("Teardown incomplete.", fg="red", bold=True)
    return f"{header} Resources: {counts}."


# ---------------------------------------------------------------------------
# Record and health
# ---------------------------------------------------------------------------


def format_record(record: Mapping[str, str]) -> str:
    """Render the config record with ``=`` signs aligned."""
    if not record:
        return ""
    width = max(len(k) for k in record)
    return "\n".join(f"{k.ljust(width)} = {record[k]}" for k in sorted(record))


def format_health(report: HealthReport, *, color: bool = True) -> str:
    style = styler(color)
    lines = []
    for c in report.checks:
        mark, fg = ("ok", "green") if c.ok else ("FAIL", "red")
        lines.append(f"  {style(mark.ljust(4), fg=fg)} {c.name}: {c.detail}")
    passed = len(report.checks) - len(report.failed)
    lines.append("")
    lines.append(f"Health: {passed}/{len(report.checks)} checks passed.")
    return "\n".join(lines)

"""[Layer: Presentation] Typer CLI Commands."""

from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as get_package_version
from typing import Iterable, NoReturn, Optional, get_args

import typer
from rich.console import Console
from rich.table import Table

from tempo.core.date_utils import parse_clock, parse_day, parse_when
from tempo.core.engine import Engine
from tempo.core.errors import ParseError, TimelineError
from tempo.core.recurrence import decode, describe, expand, occurs_in_range
from tempo.models import WEEKDAYS, RangeToken, RecurrenceDescriptor, TimeBlock

_SOURCE_LABELS = {
    "manual": "manual",
    "task_plan": "task",
    "fixed_break": "break",
    "pomodoro_log": "pomodoro",
    "time_log": "log",
}


def _get_version() -> str:
    """Get version from package metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("tempo-timeline")
    except PackageNotFoundError:
        return "0.0.0-dev"


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"tempo {_get_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="tempo",
    help="Plan the day on a timeline: place tasks, keep fixed breaks, track recurring work.",
    no_args_is_help=True,
)
task_app = typer.Typer(help="Create, list and complete tasks.", no_args_is_help=True)
block_app = typer.Typer(help="Edit time blocks on the timeline.", no_args_is_help=True)
breaks_app = typer.Typer(help="Manage weekly fixed-break rules.", no_args_is_help=True)
app.add_typer(task_app, name="task")
app.add_typer(block_app, name="block")
app.add_typer(breaks_app, name="breaks")


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Tempo timeline CLI."""


def _fail(message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _engine() -> Engine:
    try:
        return Engine()
    except TimelineError as e:
        _fail(str(e))


def _day_or_fail(raw: Optional[str]) -> datetime:
    if raw is None:
        return datetime.now()
    day = parse_day(raw)
    if day is None:
        _fail(f"Invalid day {raw!r} (use today, tomorrow or YYYY-MM-DD)")
    return datetime.combine(day, datetime.min.time())


def _when_or_fail(raw: str, base: Optional[datetime] = None) -> datetime:
    moment = parse_when(raw, now=base)
    if moment is None:
        _fail(f"Invalid time {raw!r} (use HH:MM, YYYY-MM-DD or 'YYYY-MM-DD HH:MM')")
    return moment


def _parse_days(raw: str) -> list[str]:
    """Comma-separated weekday names; 'weekdays', 'weekends' and 'all' expand."""
    days: list[str] = []
    for token in (t.strip().lower() for t in raw.split(",")):
        if not token:
            continue
        if token == "weekdays":
            days.extend(WEEKDAYS[:5])
        elif token == "weekends":
            days.extend(WEEKDAYS[5:])
        elif token == "all":
            days.extend(WEEKDAYS)
        else:
            match = [d for d in WEEKDAYS if d.startswith(token)] if len(token) >= 2 else []
            if len(match) != 1:
                _fail(f"Unknown weekday {token!r}")
            days.append(match[0])
    return list(dict.fromkeys(days))


def _print_blocks(blocks: Iterable[TimeBlock], title: str) -> None:
    table = Table(title=title)
    table.add_column("Time", no_wrap=True)
    table.add_column("Min", justify="right", no_wrap=True)
    table.add_column("Title")
    table.add_column("Kind", no_wrap=True)
    table.add_column("ID", no_wrap=True)
    for block in blocks:
        table.add_row(
            f"{block.start_time:%H:%M}-{block.end_time:%H:%M}",
            str(block.duration_minutes),
            block.title,
            _SOURCE_LABELS.get(block.source, block.source),
            block.id[:8],
        )
    Console().print(table)


def _resolve_block_id(engine: Engine, prefix: str) -> str:
    """Accept a full block id or the 8-character prefix shown by `today`."""
    block_id = engine.find_block_id(prefix)
    if block_id is None:
        _fail(f"Block {prefix!r} not found")
    return block_id


@app.command()
def version() -> None:
    """Show Tempo version."""
    typer.echo(f"tempo {_get_version()}")


# ---- Tasks ----


@task_app.command("add")
def task_add(
    title: str = typer.Argument(..., help="Task title"),
    planned: Optional[str] = typer.Option(None, "--planned", "-p", help="Planned day"),
    due: Optional[str] = typer.Option(None, "--due", "-d", help="Due day"),
    hours: Optional[float] = typer.Option(None, "--hours", help="Estimated hours"),
    pomodoros: Optional[int] = typer.Option(None, "--pomodoros", help="Estimated pomodoros"),
    repeat: Optional[str] = typer.Option(
        None, "--repeat", "-r", help="daily, workdays, weekly, monthly or yearly"
    ),
    ends_on: Optional[str] = typer.Option(None, "--until", help="Last day of the repeat"),
    times: Optional[int] = typer.Option(None, "--times", help="Number of occurrences"),
    category: str = typer.Option("next_action", "--category", "-c", help="Task category"),
) -> None:
    """Add a task (optionally recurring)."""
    planned_at = _day_or_fail(planned) if planned else None
    due_at = _day_or_fail(due) if due else None

    if (ends_on or times) and not repeat:
        _fail("--until and --times need --repeat")

    recurrence = None
    if repeat:
        if ends_on and times:
            _fail("--until and --times are mutually exclusive")
        anchor = (planned_at or datetime.now()).date()
        fields: dict = {"frequency": repeat.lower(), "anchor": anchor}
        if ends_on:
            fields.update(ends="on_date", end_date=_day_or_fail(ends_on).date())
        elif times:
            fields.update(ends="after_occurrences", occurrences=times)
        try:
            recurrence = RecurrenceDescriptor.model_validate(fields)
        except ValueError as e:
            _fail(f"Invalid recurrence: {e}")

    try:
        task = _engine().add_task(
            title,
            category=category,
            due_date=due_at,
            planned_date=planned_at,
            recurrence=recurrence,
            estimated_duration_hours=hours,
            estimated_pomodoros=pomodoros,
        )
    except (TimelineError, ValueError) as e:
        _fail(str(e))
    typer.echo(f"Added task {task.id[:8]}: {task.title}")
    if recurrence is not None:
        typer.echo(f"Repeats: {describe(recurrence)}")


@task_app.command("list")
def task_list(
    show_done: bool = typer.Option(False, "--all", "-a", help="Include completed tasks"),
) -> None:
    """List tasks."""
    try:
        tasks = [t for t in _engine().list_tasks() if show_done or not t.completed]
    except TimelineError as e:
        _fail(str(e))
    if not tasks:
        typer.echo("No tasks yet. Use 'tempo task add' to create one.")
        return
    table = Table(title=f"Tasks ({len(tasks)})")
    table.add_column("ID", no_wrap=True)
    table.add_column("Title")
    table.add_column("Planned", no_wrap=True)
    table.add_column("Repeat")
    for t in tasks:
        marker = "(done) " if t.completed else ""
        planned = f"{t.planned_date:%Y-%m-%d}" if t.planned_date else "-"
        table.add_row(t.id[:8], f"{marker}{t.title}", planned, "yes" if t.is_recurring else "")
    Console().print(table)


def _resolve_task_id(engine: Engine, prefix: str) -> str:
    if engine.get_task(prefix):
        return prefix
    matches = [t.id for t in engine.list_tasks() if t.id.startswith(prefix)]
    if len(matches) != 1:
        _fail(f"Task {prefix!r} not found")
    return matches[0]


@task_app.command("done")
def task_done(task_id: str = typer.Argument(..., help="Task id or prefix")) -> None:
    """Mark a task completed."""
    engine = _engine()
    try:
        task = engine.complete_task(_resolve_task_id(engine, task_id))
    except TimelineError as e:
        _fail(str(e))
    if task is None:
        _fail(f"Task {task_id!r} not found")
    typer.echo(f"Completed: {task.title}")


@app.command()
def schedule(task_id: str = typer.Argument(..., help="Task id or prefix")) -> None:
    """Place a task on today's timeline in the next free slot."""
    engine = _engine()
    try:
        block = engine.schedule_task(_resolve_task_id(engine, task_id))
    except (TimelineError, ValueError) as e:
        _fail(str(e))
    typer.echo(
        f"Scheduled {block.title!r} at {block.start_time:%H:%M}-{block.end_time:%H:%M}"
    )


@app.command()
def today(
    day: Optional[str] = typer.Option(None, "--day", "-d", help="Day to show (default today)"),
) -> None:
    """Show the day's timeline (fixed breaks are reconciled first)."""
    when = _day_or_fail(day)
    try:
        blocks = _engine().today_timeline(when.date())
    except TimelineError as e:
        _fail(str(e))
    if not blocks:
        typer.echo(f"Nothing planned for {when:%Y-%m-%d}.")
        return
    _print_blocks(blocks, f"Timeline {when:%A %Y-%m-%d}")


# ---- Blocks ----


@block_app.command("add")
def block_add(
    title: str = typer.Argument(..., help="Block title"),
    start: str = typer.Argument(..., help="Start (HH:MM or 'YYYY-MM-DD HH:MM')"),
    end: str = typer.Argument(..., help="End (HH:MM or 'YYYY-MM-DD HH:MM')"),
) -> None:
    """Add a manual block."""
    start_at = _when_or_fail(start)
    end_at = _when_or_fail(end, base=start_at)
    if end_at <= start_at:
        _fail("Block must end after it starts")
    try:
        block = _engine().add_block(title, start_at, end_at)
    except TimelineError as e:
        _fail(str(e))
    typer.echo(f"Added block {block.id[:8]}: {block.start_time:%H:%M}-{block.end_time:%H:%M}")


@block_app.command("delete")
def block_delete(block_id: str = typer.Argument(..., help="Block id or prefix")) -> None:
    """Delete a block."""
    engine = _engine()
    try:
        engine.delete_block(_resolve_block_id(engine, block_id))
    except TimelineError as e:
        _fail(str(e))
    typer.echo("Deleted.")


@block_app.command("move")
def block_move(
    block_id: str = typer.Argument(..., help="Block id or prefix"),
    new_start: str = typer.Argument(..., help="New start (HH:MM or 'YYYY-MM-DD HH:MM')"),
) -> None:
    """Move a block, keeping its duration. Moved breaks become manual blocks."""
    engine = _engine()
    start_at = _when_or_fail(new_start)
    try:
        block = engine.reschedule_block(_resolve_block_id(engine, block_id), start_at)
    except (TimelineError, ValueError) as e:
        _fail(str(e))
    typer.echo(f"Moved {block.title!r} to {block.start_time:%Y-%m-%d %H:%M}")


# ---- Fixed breaks ----


@breaks_app.command("add")
def breaks_add(
    start: str = typer.Argument(..., help="Start time HH:MM"),
    end: str = typer.Argument(..., help="End time HH:MM"),
    days: str = typer.Option(
        "weekdays", "--days", help="Comma-separated weekdays, or weekdays/weekends/all"
    ),
    label: Optional[str] = typer.Option(None, "--label", "-l", help="Block title"),
) -> None:
    """Add a weekly fixed break."""
    start_at, end_at = parse_clock(start), parse_clock(end)
    if start_at is None or end_at is None:
        _fail("Times must be HH:MM")
    try:
        rule = _engine().add_rule(start_at, end_at, _parse_days(days), label=label)
    except TimelineError as e:
        _fail(str(e))
    typer.echo(
        f"Added break {rule.id[:8]}: {rule.start_time:%H:%M}-{rule.end_time:%H:%M} "
        f"on {', '.join(rule.days_of_week)}"
    )


@breaks_app.command("list")
def breaks_list() -> None:
    """List fixed-break rules. Rules that cannot produce a block show as invalid."""
    try:
        rules = _engine().list_rules()
    except TimelineError as e:
        _fail(str(e))
    if not rules:
        typer.echo("No fixed breaks. Use 'tempo breaks add 12:00 13:00' to add one.")
        return
    table = Table(title=f"Fixed breaks ({len(rules)})")
    table.add_column("ID", no_wrap=True)
    table.add_column("Time", no_wrap=True)
    table.add_column("Label")
    table.add_column("Days")
    table.add_column("On", no_wrap=True)
    for r in rules:
        table.add_row(
            r.id[:8],
            f"{r.start_time:%H:%M}-{r.end_time:%H:%M}",
            r.label or "",
            ", ".join(d[:3] for d in r.days_of_week),
            ("yes" if r.is_enabled else "no") if r.is_valid else "invalid",
        )
    Console().print(table)


def _resolve_rule_id(engine: Engine, prefix: str) -> str:
    matches = [r.id for r in engine.list_rules() if r.id.startswith(prefix)]
    if prefix in matches:
        return prefix
    if len(matches) != 1:
        _fail(f"Fixed break {prefix!r} not found")
    return matches[0]


def _toggle_rule(rule_id: str, enabled: bool) -> None:
    engine = _engine()
    try:
        rule = engine.set_rule_enabled(_resolve_rule_id(engine, rule_id), enabled)
    except TimelineError as e:
        _fail(str(e))
    if rule is None:
        _fail(f"Fixed break {rule_id!r} not found")
    typer.echo(f"{'Enabled' if enabled else 'Disabled'} break {rule.id[:8]}")


@breaks_app.command("enable")
def breaks_enable(rule_id: str = typer.Argument(..., help="Rule id or prefix")) -> None:
    """Enable a fixed break."""
    _toggle_rule(rule_id, True)


@breaks_app.command("disable")
def breaks_disable(rule_id: str = typer.Argument(..., help="Rule id or prefix")) -> None:
    """Disable a fixed break (its blocks are removed on the next reconcile)."""
    _toggle_rule(rule_id, False)


@breaks_app.command("remove")
def breaks_remove(rule_id: str = typer.Argument(..., help="Rule id or prefix")) -> None:
    """Delete a fixed-break rule."""
    engine = _engine()
    try:
        engine.delete_rule(_resolve_rule_id(engine, rule_id))
    except TimelineError as e:
        _fail(str(e))
    typer.echo("Removed.")


# ---- Stats & recurrence ----


@app.command()
def stats(
    range_: str = typer.Option("today", "--range", "-r", help="today, week, month or all"),
) -> None:
    """Show task statistics for a time range."""
    token = range_.lower()
    if token not in get_args(RangeToken):
        _fail(f"Unknown range {range_!r} (use {', '.join(get_args(RangeToken))})")
    try:
        result = _engine().task_stats(token)
    except TimelineError as e:
        _fail(str(e))
    table = Table(title=f"Tasks ({token})")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for name, count in result.as_dict().items():
        table.add_row(name.replace("_", " "), str(count))
    Console().print(table)


@app.command()
def occurs(
    rule: str = typer.Argument(..., help="Recurrence JSON or RRULE string"),
    from_: str = typer.Option(..., "--from", help="First day of the range"),
    to: str = typer.Option(..., "--to", help="Last day of the range"),
    anchor: Optional[str] = typer.Option(
        None, "--anchor", help="Start date for rules that carry none"
    ),
) -> None:
    """Check whether a recurrence rule has an occurrence within a day range."""
    first = _day_or_fail(from_).date()
    last = _day_or_fail(to).date()
    anchor_day = _day_or_fail(anchor).date() if anchor else None
    try:
        descriptor = decode(rule, anchor=anchor_day)
    except ParseError as e:
        _fail(str(e))
    typer.echo(describe(descriptor))
    if not occurs_in_range(descriptor, first, last):
        typer.echo(f"No occurrence between {first} and {last}.")
        return
    days = expand(descriptor, first, last)
    shown = ", ".join(d.isoformat() for d in days[:10])
    more = f" (+{len(days) - 10} more)" if len(days) > 10 else ""
    typer.echo(f"{len(days)} occurrence(s): {shown}{more}")

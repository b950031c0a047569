"""CLI: goaltimer sessions list|summary|cleanup"""

import datetime as dt
import json

import click
from rich.console import Console
from rich.table import Table

from goaltimer.clock import elapsed_active_seconds, format_duration, utcnow
from goaltimer.errors import GoalTimerError

console = Console()


def _get_client():
    from goaltimer.cli.main import _get_client
    return _get_client()


def _run(coro):
    from goaltimer.cli.main import _run
    return _run(coro)


@click.group()
def sessions():
    """Daily session records."""


@sessions.command("list")
@click.option("--date", "day", default=None, type=click.DateTime(["%Y-%m-%d"]), help="Defaults to today")
@click.option("--user", "user_id", default=None, type=int)
@click.option("--json-output", "--json", is_flag=True)
def sessions_list(day, user_id, json_output):
    """List sessions for a day."""

    async def _list():
        client = _get_client()
        try:
            rows = await client.sessions.list(user_id=user_id, date=day.date() if day else dt.date.today())
        except GoalTimerError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.http.close()
        if json_output:
            click.echo(json.dumps([s.model_dump(mode="json") for s in rows], indent=2))
            return
        now = utcnow()
        table = Table(title=f"Sessions ({len(rows)})")
        table.add_column("ID", style="bold")
        table.add_column("User")
        table.add_column("Goal")
        table.add_column("Status")
        table.add_column("Active")
        for s in rows:
            active = format_duration(elapsed_active_seconds(s, now)) if s.is_active else "-"
            table.add_row(str(s.id), s.user_name or str(s.user_id), str(s.goal_id), s.status.value, active)
        console.print(table)

    _run(_list())


@sessions.command("summary")
@click.option("--goal", "goal_id", default=None, type=int)
def sessions_summary(goal_id):
    """DONE / MISSED totals per user."""

    async def _summary():
        client = _get_client()
        try:
            rows = await client.sessions.summary(goal_id=goal_id)
        finally:
            await client.http.close()
        table = Table(title="Summary")
        table.add_column("User", style="bold")
        table.add_column("Done", style="green")
        table.add_column("Missed", style="red")
        for r in rows:
            table.add_row(r.user_name or str(r.user_id), str(r.total_done), str(r.total_missed))
        console.print(table)

    _run(_summary())


@sessions.command("cleanup")
def sessions_cleanup():
    """Mark stale sessions from previous days as MISSED."""

    async def _cleanup():
        client = _get_client()
        try:
            with console.status("Checking sessions..."):
                result = await client.sessions.check_and_cleanup()
        finally:
            await client.http.close()
        console.print(f"[green]{result.cleaned_up} stale session(s) marked MISSED, "
                      f"{result.auto_paused} auto-paused.[/green]")

    _run(_cleanup())

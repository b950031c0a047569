"""CLI: goaltimer watch — live timers until Ctrl-C."""

import asyncio

import click
from rich.console import Console
from rich.live import Live
from rich.table import Table

from goaltimer.client import AsyncGoalTimer
from goaltimer.clock import format_duration, progress
from goaltimer.errors import ConnectionError

console = Console()


def _get_client() -> AsyncGoalTimer:
    from goaltimer.cli.main import _get_client
    return _get_client()


def _run(coro):
    from goaltimer.cli.main import _run
    return _run(coro)


def _render(client: AsyncGoalTimer) -> Table:
    table = Table(title="Timers")
    table.add_column("User", style="bold")
    table.add_column("Status")
    table.add_column("Elapsed")
    table.add_column("Remaining")
    table.add_column("Progress")
    for entry in client.store.entries():
        remaining = entry.remaining_seconds
        pct = f"{progress(entry.elapsed_seconds, entry.target_seconds):.0f}%" if entry.target_seconds else "-"
        status_style = "green" if entry.status.value == "IN_PROGRESS" else "yellow"
        table.add_row(
            str(entry.user_id),
            f"[{status_style}]{entry.status.value}[/{status_style}]",
            format_duration(entry.elapsed_seconds),
            format_duration(remaining) if remaining is not None else "-",
            pct,
        )
    return table


@click.command("watch")
@click.option("--feed", is_flag=True, help="Also listen for pushed session changes")
def watch_cmd(feed: bool):
    """Show ticking timers for today's sessions."""

    async def _watch():
        client = _get_client()
        await client.open()
        if feed:
            try:
                await client.connect_feed()
            except ConnectionError as e:
                console.print(f"[yellow]{e}; polling only.[/yellow]")
        try:
            with Live(_render(client), console=console, refresh_per_second=4) as live:
                remove = client.store.add_listener(lambda _elapsed: live.update(_render(client)))
                try:
                    while True:
                        await asyncio.sleep(3600)
                finally:
                    remove()
        finally:
            await client.close()

    try:
        _run(_watch())
    except KeyboardInterrupt:
        pass

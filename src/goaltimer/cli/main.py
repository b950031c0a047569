"""
goaltimer CLI — `goaltimer` command.

Commands:
  goaltimer config              Show or update ~/.goaltimer/config.json
  goaltimer sessions <cmd>      List sessions, summaries, run the cleanup sweep
  goaltimer start <goal-id>     Start timing a goal (or one of its sub-tasks)
  goaltimer pause|resume|stop   Control today's session
  goaltimer complete-sub-task   Finish the current sub-task
  goaltimer watch               Live timer display
"""

import asyncio
import logging
from typing import Optional

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install goaltimer[cli]")

from goaltimer.client import AsyncGoalTimer
from goaltimer.config import load_settings, save_settings
from goaltimer.notices import Notice

console = Console()

NOTICE_STYLES = {"success": "green", "info": "cyan", "error": "red"}


def _get_client() -> AsyncGoalTimer:
    settings = load_settings()
    if settings.user_id is None:
        console.print("[red]No user configured. Run `goaltimer config --user-id <id>` first.[/red]")
        raise SystemExit(1)
    client = AsyncGoalTimer(settings)
    client.notifier.add_handler(_print_notice)
    return client


def _print_notice(notice: Notice) -> None:
    style = NOTICE_STYLES.get(notice.level, "white")
    console.print(f"[{style}]{notice.message}[/{style}]")


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log engine activity to stderr")
def main(verbose: bool):
    """goaltimer CLI — focused-work timers for your daily goals."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


@main.command("config")
@click.option("--base-url", default=None, help="Session Service base URL")
@click.option("--user-id", default=None, type=int, help="Your user id")
@click.option("--token", default=None, help="Bearer token for the Session Service")
def config_cmd(base_url: Optional[str], user_id: Optional[int], token: Optional[str]):
    """Show or update settings."""
    settings = load_settings()
    updates = {k: v for k, v in {"base_url": base_url, "user_id": user_id, "access_token": token}.items()
               if v is not None}
    if updates:
        settings = settings.model_copy(update=updates)
        save_settings(settings)
        console.print("[green]Settings saved.[/green]")
    console.print(f"Base URL: {settings.base_url}")
    console.print(f"User ID:  {settings.user_id if settings.user_id is not None else '-'}")
    console.print(f"Token:    {'set' if settings.access_token else '-'}")


# Register subcommands from separate modules
from goaltimer.cli.sessions import sessions
from goaltimer.cli.timer import start_cmd, pause_cmd, resume_cmd, stop_cmd, complete_sub_task_cmd
from goaltimer.cli.watch import watch_cmd

main.add_command(sessions)
main.add_command(start_cmd)
main.add_command(pause_cmd)
main.add_command(resume_cmd)
main.add_command(stop_cmd)
main.add_command(complete_sub_task_cmd)
main.add_command(watch_cmd)


if __name__ == "__main__":
    main()

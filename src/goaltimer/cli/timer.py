"""CLI: goaltimer start|pause|resume|stop|complete-sub-task"""

import inspect
from typing import Callable, Optional

import click
from rich.console import Console

from goaltimer.client import AsyncGoalTimer
from goaltimer.errors import GoalTimerError

console = Console()

STOP_WARNING = (
    "Stopping ends this session permanently. You will NOT be able to pause or "
    "resume afterwards, and it is marked MISSED unless you reached your goal."
)


def _get_client() -> AsyncGoalTimer:
    from goaltimer.cli.main import _get_client
    return _get_client()


def _run(coro):
    from goaltimer.cli.main import _run
    return _run(coro)


def _act(action: Callable[[AsyncGoalTimer], object]) -> None:
    """Load today's sessions, apply `action`, wait for the request and reload."""

    async def _go():
        client = _get_client()
        try:
            await client.reconciler.sync()
            task = action(client)
            if inspect.iscoroutine(task):
                task = await task
            await task
        except GoalTimerError as e:
            console.print(f"[red]{e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()

    _run(_go())


@click.command("start")
@click.argument("goal_id", type=int)
@click.option("--sub-task", "sub_task_id", default=None, type=int, help="Required when the goal has sub-tasks")
def start_cmd(goal_id: int, sub_task_id: Optional[int]):
    """Start timing a goal for today."""
    _act(lambda c: c.start(goal_id, sub_task_id=sub_task_id))


@click.command("pause")
def pause_cmd():
    """Pause today's session."""
    _act(lambda c: c.pause())


@click.command("resume")
def resume_cmd():
    """Resume a paused session."""
    _act(lambda c: c.resume())


@click.command("stop")
@click.option("-y", "--yes", is_flag=True, help="Skip the confirmation")
def stop_cmd(yes: bool):
    """Stop today's session for good."""
    if not yes:
        console.print(f"[yellow]{STOP_WARNING}[/yellow]")
        click.confirm("Are you sure you want to STOP this session?", abort=True)
    _act(lambda c: c.stop())


@click.command("complete-sub-task")
def complete_sub_task_cmd():
    """Finish the current sub-task and reset the timer for the next one."""
    _act(lambda c: c.complete_sub_task())

import pytest

from goaltimer.errors import NetworkError, ValidationError
from goaltimer.models.session import SessionStatus
from goaltimer.state import Action, TimerState

from conftest import T0, TODAY, Engine


async def running(engine: Engine, **fields) -> None:
    fields.setdefault("started_at", T0)
    engine.service.add(user_id=1, status=SessionStatus.IN_PROGRESS, **fields)
    await engine.reconciler.sync()
    engine.service.calls.clear()


def messages(engine: Engine, level: str) -> list[str]:
    return [n.message for n in engine.notices if n.level == level]


def test_rejected_start_sends_nothing(engine: Engine):
    with pytest.raises(ValidationError) as exc:
        engine.updater.start(1, 7, sub_task_ids=[3, 4], date=TODAY)
    assert exc.value.code == "sub_task_required"
    assert engine.service.calls == []
    assert len(engine.store) == 0
    assert engine.machine.state(1) == TimerState.IDLE


def test_acting_for_someone_else_is_forbidden(engine: Engine):
    with pytest.raises(ValidationError) as exc:
        engine.updater.start(2, 7, date=TODAY)
    assert exc.value.code == "forbidden"
    assert engine.service.calls == []


@pytest.mark.asyncio
async def test_start_is_shown_before_the_server_answers(engine: Engine):
    task = engine.updater.start(1, 7, date=TODAY, target_seconds=1800)
    assert engine.machine.state(1) == TimerState.IN_PROGRESS
    assert engine.store.get(1).started_at == T0
    assert engine.service.calls == []

    session = await task
    assert session.id == 1
    assert engine.service.calls == ["start", "list"]
    assert engine.machine.record(1).id == 1
    assert engine.store.get(1).target_seconds == 1800
    assert messages(engine, "success") == ["Session started!"]


@pytest.mark.asyncio
async def test_failed_pause_is_undone_by_reload(engine: Engine):
    await running(engine)
    engine.clock.advance(30)
    engine.service.fail.add("pause")

    task = engine.updater.pause(1)
    assert engine.store.status_by_user() == {1: SessionStatus.PAUSED}
    assert engine.machine.state(1) == TimerState.PAUSED

    assert await task is None
    assert engine.service.calls == ["pause", "list"]
    assert messages(engine, "error") == ["pause failed"]
    assert engine.store.status_by_user() == {1: SessionStatus.IN_PROGRESS}
    assert engine.machine.state(1) == TimerState.IN_PROGRESS
    assert engine.elapsed() == 30


@pytest.mark.asyncio
async def test_pause_cycles_accumulate_on_the_server(engine: Engine):
    await running(engine)
    engine.clock.advance(60)
    await engine.updater.pause(1)
    engine.clock.advance(20)
    await engine.updater.resume(1)
    assert engine.elapsed() == 60

    engine.clock.advance(40)
    await engine.updater.pause(1)
    assert engine.elapsed() == 100
    engine.clock.advance(30)
    await engine.updater.resume(1)

    engine.clock.advance(60)
    engine.store.tick()
    assert engine.service.records[1].total_paused_seconds == 50
    assert engine.elapsed() == 160


@pytest.mark.asyncio
async def test_stop_is_final(engine: Engine):
    await running(engine)
    task = engine.updater.stop(1)
    assert 1 not in engine.store
    assert engine.machine.state(1) == TimerState.MISSED
    with pytest.raises(ValidationError):
        engine.updater.resume(1)
    with pytest.raises(ValidationError):
        engine.updater.pause(1)

    await task
    assert engine.service.calls == ["stop", "list"]
    assert engine.machine.state(1) == TimerState.MISSED
    assert messages(engine, "success") == ["Session stopped"]


@pytest.mark.asyncio
async def test_target_reached_completes_the_session(engine: Engine):
    engine.store.on_target_reached(engine.updater.complete)
    await running(engine)
    engine.store.get(1).target_seconds = 60

    engine.clock.advance(60)
    engine.store.tick()
    assert engine.machine.state(1) == TimerState.DONE
    assert 1 not in engine.store

    await engine.updater.drain()
    assert engine.service.calls == ["complete", "list"]
    assert engine.service.records[1].status == SessionStatus.DONE
    assert messages(engine, "success") == ["Session completed!"]


@pytest.mark.asyncio
async def test_complete_sub_task_waits_for_the_next_one(engine: Engine):
    await running(engine, sub_task_id=3)
    engine.clock.advance(600)

    task = engine.updater.complete_sub_task(1)
    assert 1 not in engine.store
    assert engine.machine.state(1) == TimerState.IDLE

    await task
    assert engine.service.calls == ["complete_sub_task", "list"]
    assert engine.machine.state(1) == TimerState.IDLE
    assert 1 not in engine.store
    record = engine.machine.check(Action.START, 1, 1, goal_id=7, sub_task_id=4, sub_task_ids=[3, 4])
    assert record.sub_task_id == 4


@pytest.mark.asyncio
async def test_reload_hooks_run_after_every_action(engine: Engine):
    await running(engine)
    ran: list[str] = []

    async def summaries() -> None:
        ran.append("summaries")

    async def broken() -> None:
        raise NetworkError("summary endpoint down")

    engine.updater.add_reload_hook(broken)
    remove = engine.updater.add_reload_hook(summaries)
    await engine.updater.pause(1)
    assert ran == ["summaries"]

    remove()
    await engine.updater.resume(1)
    assert ran == ["summaries"]


@pytest.mark.asyncio
async def test_paused_display_holds_while_other_users_change(engine: Engine):
    await running(engine)
    engine.clock.advance(60)
    engine.service.fail.update({"pause", "list"})

    await engine.updater.pause(1)
    assert engine.elapsed() == 60

    engine.clock.advance(300)
    other = engine.service.add(user_id=2, started_at=T0, status=SessionStatus.IN_PROGRESS)
    engine.reconciler.apply_session(other)
    assert engine.store.status_by_user()[1] == SessionStatus.PAUSED
    assert engine.elapsed() == 60
    assert engine.elapsed(2) == 360

import datetime as dt
import json
import math

import httpx
import pytest

from goaltimer import AsyncGoalTimer, GoalTimer, Settings
from goaltimer.errors import ConnectionError, ValidationError
from goaltimer.models.session import Session, SessionStatus
from goaltimer.state import TimerState
from goaltimer.transport.socketio import SessionFeed

from conftest import T0, TODAY, FakeClock

pytestmark = pytest.mark.usefixtures("config_file")


class FakeService:
    """Session Service over HTTP, answering with the standard envelope."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.rows: dict[int, dict] = {}
        self.paths: list[str] = []
        self.cleaned_up = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.paths.append(f"{request.method} {path}")
        body = json.loads(request.content) if request.content else {}
        now = self.clock().isoformat()

        if path == "/user-goals":
            return self.ok([{"id": 5, "user_id": 1, "goal_id": 7, "daily_duration_minutes": 45}])
        if path == "/goal-sub-tasks":
            return self.ok([
                {"id": 3, "user_goal_id": 5, "title": "Scales", "duration_minutes": 10, "display_order": 1},
                {"id": 4, "user_goal_id": 5, "title": "Pieces", "duration_minutes": 35, "display_order": 2},
            ])
        if path == "/daily-sessions":
            day = request.url.params.get("date")
            return self.ok([r for r in self.rows.values() if day is None or r["date"] == day])
        if path == "/daily-sessions/check-and-cleanup":
            return self.ok({"cleanedUp": self.cleaned_up, "autoPaused": 0, "sessions": list(self.rows.values())})
        if path == "/daily-sessions/start":
            row = {**body, "id": 11, "started_at": now, "paused_at": None, "finished_at": None,
                   "total_paused_seconds": 0, "status": "IN_PROGRESS"}
            self.rows[11] = row
            return self.ok(row)

        row = self.rows.get(body.get("session_id"))
        if row is None:
            return httpx.Response(404, json={"success": False, "error": "Session not found"})
        if path == "/daily-sessions/pause":
            row.update(paused_at=now, status="PAUSED")
        elif path == "/daily-sessions/resume":
            paused = self.clock() - dt.datetime.fromisoformat(row["paused_at"])
            row.update(paused_at=None, status="IN_PROGRESS",
                       total_paused_seconds=row["total_paused_seconds"] + math.floor(paused.total_seconds()))
        elif path == "/daily-sessions/stop":
            row.update(paused_at=None, finished_at=now, status="MISSED")
        return self.ok(row)

    @staticmethod
    def ok(data) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": data})


@pytest.fixture
def service(clock: FakeClock) -> FakeService:
    return FakeService(clock)


def make_timer(service: FakeService, clock: FakeClock, cls=AsyncGoalTimer):
    return cls(
        settings=Settings(base_url="http://service.test", user_id=1, sync_interval=3600),
        transport=httpx.MockTransport(service),
        clock=clock,
        today=lambda: TODAY,
    )


@pytest.mark.asyncio
async def test_start_pause_resume_through_the_service(service: FakeService, clock: FakeClock):
    timer = make_timer(service, clock)
    result = await timer.open()
    assert result.cleaned_up == 0

    task = await timer.start(7, sub_task_id=3)
    assert timer.elapsed() == 0
    assert timer.remaining() == 600
    session = await task
    assert session.id == 11
    assert session.date == TODAY
    assert timer.store.get(1).session_id == 11
    assert timer.reconciler.polling

    clock.advance(90)
    timer.store.tick()
    assert (timer.elapsed(), timer.remaining()) == (90, 510)

    await timer.pause()
    assert timer.machine.state(1) == TimerState.PAUSED
    clock.advance(40)
    await timer.resume()
    clock.advance(10)
    timer.store.tick()
    assert service.rows[11]["total_paused_seconds"] == 40
    assert timer.elapsed() == 100

    await timer.close()
    assert not timer.store.ticking
    assert not timer.reconciler.polling


@pytest.mark.asyncio
async def test_start_needs_a_sub_task_when_the_goal_has_them(service: FakeService, clock: FakeClock):
    async with make_timer(service, clock) as timer:
        with pytest.raises(ValidationError) as exc:
            await timer.start(7)
        assert exc.value.code == "sub_task_required"
    assert not any("start" in p for p in service.paths)


@pytest.mark.asyncio
async def test_open_restores_paused_session(service: FakeService, clock: FakeClock):
    service.rows[11] = {
        "id": 11, "user_id": 1, "goal_id": 7, "date": TODAY.isoformat(), "sub_task_id": None,
        "started_at": T0.isoformat(), "paused_at": "2026-10-16T09:05:00+00:00", "total_paused_seconds": 0,
        "status": "PAUSED",
    }
    service.cleaned_up = 1
    clock.advance(7200)
    async with make_timer(service, clock) as timer:
        assert timer.elapsed() == 300
        assert timer.remaining() == 45 * 60 - 300
        assert timer.store.status_by_user() == {1: SessionStatus.PAUSED}
        assert not timer.store.ticking


@pytest.mark.asyncio
async def test_open_falls_back_to_plain_sync(service: FakeService, clock: FakeClock):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("check-and-cleanup"):
            return httpx.Response(500, json={"success": False, "error": "sweep failed"})
        return service(request)

    timer = AsyncGoalTimer(
        settings=Settings(base_url="http://service.test", user_id=1),
        transport=httpx.MockTransport(handler), clock=clock, today=lambda: TODAY,
    )
    notices: list = []
    timer.notifier.add_handler(notices.append)
    await timer.open()
    assert [n.level for n in notices] == ["error"]
    assert "GET /daily-sessions" in service.paths
    await timer.close()


@pytest.mark.asyncio
async def test_actions_need_a_user(service: FakeService, clock: FakeClock):
    timer = AsyncGoalTimer(
        settings=Settings(base_url="http://service.test"),
        transport=httpx.MockTransport(service), clock=clock,
    )
    with pytest.raises(ConnectionError):
        timer.pause()
    await timer.http.close()


def test_sync_wrapper(service: FakeService, clock: FakeClock):
    timer = make_timer(service, clock, cls=GoalTimer)
    timer.open()
    session = timer.start(7, sub_task_id=4)
    assert session.sub_task_id == 4
    clock.advance(5)
    stopped = timer.stop()
    assert stopped.status == SessionStatus.MISSED
    assert timer.elapsed() == 0
    timer.close()


def test_feed_dispatches_valid_records_only():
    feed = SessionFeed("http://service.test")
    seen: list = []
    feed.add_handler(seen.append)
    feed.dispatch({"user_id": 1})
    feed.dispatch({"id": 2, "user_id": 1, "goal_id": 7, "date": "2026-10-16", "status": "DONE"})
    assert [s.id for s in seen] == [2]


@pytest.mark.asyncio
async def test_start_for_someone_else_sends_nothing(service: FakeService, clock: FakeClock):
    timer = make_timer(service, clock)
    with pytest.raises(ValidationError) as exc:
        await timer.start(7, user_id=2)
    assert exc.value.code == "forbidden"
    assert service.paths == []
    await timer.http.close()


@pytest.mark.asyncio
async def test_start_while_running_sends_nothing(service: FakeService, clock: FakeClock):
    timer = make_timer(service, clock)
    timer.machine.put(Session(id=11, user_id=1, goal_id=7, date=TODAY, started_at=T0,
                              status=SessionStatus.IN_PROGRESS))
    with pytest.raises(ValidationError) as exc:
        await timer.start(7)
    assert exc.value.code == "invalid_transition"
    assert service.paths == []
    await timer.http.close()

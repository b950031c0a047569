import datetime as dt
import math
from typing import Optional

import pytest

from goaltimer import config
from goaltimer.errors import NetworkError
from goaltimer.models.session import CleanupResult, Session, SessionStatus
from goaltimer.notices import Notifier
from goaltimer.optimistic import OptimisticUpdater
from goaltimer.state import SessionStateMachine
from goaltimer.sync import Reconciler
from goaltimer.ticker import TimerStore

T0 = dt.datetime(2026, 10, 16, 9, 0, 0, tzinfo=dt.timezone.utc)
TODAY = dt.date(2026, 10, 16)


class FakeClock:
    def __init__(self, start: dt.datetime = T0):
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += dt.timedelta(seconds=seconds)


class FakeSessionService:
    """In-memory Session Service with the server's pause accounting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.records: dict[int, Session] = {}
        self.calls: list[str] = []
        self.fail: set[str] = set()
        self._next_id = 1

    def add(self, **fields) -> Session:
        fields.setdefault("id", self._next_id)
        fields.setdefault("goal_id", 7)
        fields.setdefault("date", TODAY)
        self._next_id = max(self._next_id, fields["id"]) + 1
        session = Session(**fields)
        self.records[session.id] = session
        return session

    def _call(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail:
            raise NetworkError(f"{op} failed")

    def _update(self, session_id: int, **changes) -> Session:
        session = self.records[session_id].model_copy(update=changes)
        self.records[session_id] = session
        return session

    async def list(self, user_id=None, goal_id=None, start_date=None, end_date=None, date=None):
        self._call("list")
        rows = list(self.records.values())
        if user_id is not None:
            rows = [s for s in rows if s.user_id == user_id]
        if date is not None:
            rows = [s for s in rows if s.date == date]
        elif start_date is not None and end_date is not None:
            rows = [s for s in rows if start_date <= s.date <= end_date]
        return rows

    async def start(self, user_id: int, goal_id: int, date: dt.date, sub_task_id: Optional[int] = None):
        self._call("start")
        return self.add(user_id=user_id, goal_id=goal_id, date=date, sub_task_id=sub_task_id,
                        started_at=self.clock(), status=SessionStatus.IN_PROGRESS)

    async def pause(self, session_id: int):
        self._call("pause")
        return self._update(session_id, paused_at=self.clock(), status=SessionStatus.PAUSED)

    async def resume(self, session_id: int):
        self._call("resume")
        session = self.records[session_id]
        paused = math.floor((self.clock() - session.paused_at).total_seconds())
        return self._update(session_id, paused_at=None, status=SessionStatus.IN_PROGRESS,
                            total_paused_seconds=session.total_paused_seconds + paused)

    async def stop(self, session_id: int):
        self._call("stop")
        return self._update(session_id, paused_at=None, finished_at=self.clock(), status=SessionStatus.MISSED)

    async def complete(self, session_id: int):
        self._call("complete")
        return self._update(session_id, finished_at=self.clock(), status=SessionStatus.DONE)

    async def complete_sub_task(self, session_id: int):
        self._call("complete_sub_task")
        return self._update(session_id, started_at=None, sub_task_id=None)

    async def check_and_cleanup(self):
        self._call("check_and_cleanup")
        return CleanupResult(sessions=[s for s in self.records.values() if s.date == TODAY])


class Engine:
    def __init__(self) -> None:
        self.clock = FakeClock()
        self.service = FakeSessionService(self.clock)
        self.notifier = Notifier()
        self.notices: list = []
        self.notifier.add_handler(self.notices.append)
        self.store = TimerStore(clock=self.clock)
        self.machine = SessionStateMachine()
        self.reconciler = Reconciler(
            self.service, self.store, self.machine, notifier=self.notifier, today=lambda: TODAY,
        )
        self.updater = OptimisticUpdater(
            self.service, self.store, self.machine, self.reconciler,
            actor_id=1, notifier=self.notifier, clock=self.clock,
        )

    def elapsed(self, user_id: int = 1) -> int:
        return self.store.elapsed_by_user().get(user_id, 0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> Engine:
    return Engine()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Point settings at an empty temp config file and a clean environment."""
    path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_FILE", path)
    for name in config.Settings.model_fields:
        monkeypatch.delenv(f"{config.ENV_PREFIX}{name.upper()}", raising=False)
    return path

import asyncio
import copy
import json
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.core.analytics import utcnow
from app.core.records import (
    DashboardAnalytics,
    ExerciseRecord,
    FocusSuggestion,
    ReportSummary,
    SetRecord,
    StreakStats,
    SubscriptionStatus,
    UserRecord,
)
from app.core.security import create_access_token
from app.db.models import User
from app.db.session import SessionLocal, configure_database, create_tables
from app.services.data_store import USER_PATCH_FIELDS, StoreError
from app.services.llm import AgentMessage, AgentToolCall, LLMRequestError, get_agent_runtime
from app.services.rate_limit import FixedWindowRateLimiter, get_rate_limiter
from app.services.undo import UndoLedger, get_undo_ledger
from app.tools.catalog import register_undo_handlers
from app.tools.context import ToolContext


class FakeScenario(str, Enum):
    TEXT_ONLY = "TEXT_ONLY"
    LOG_THEN_SUMMARY = "LOG_THEN_SUMMARY"
    MALFORMED_ARGS = "MALFORMED_ARGS"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    TOOL_THEN_ERROR = "TOOL_THEN_ERROR"
    SLOW = "SLOW"
    LOOP = "LOOP"


def _call(name: str, arguments: Any = None, call_id: Optional[str] = None) -> AgentToolCall:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments or {})
    return AgentToolCall(id=call_id or f"call_{name}", name=name, arguments=raw)


class FakeAgentRuntime:
    """Scripted model: each scenario maps a round index to a reply."""

    model = "fake/coach-model"

    def __init__(self, scenario: FakeScenario) -> None:
        self.scenario = scenario
        self.calls: list[list[dict[str, Any]]] = []
        self.tools_seen: list[dict[str, Any]] = []

    async def complete(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> AgentMessage:
        self.calls.append([dict(message) for message in messages])
        self.tools_seen = tools
        round_index = len(self.calls) - 1

        if self.scenario == FakeScenario.TEXT_ONLY:
            return AgentMessage(content="Nice work this week. Keep the streak going.")
        if self.scenario == FakeScenario.LOG_THEN_SUMMARY:
            if round_index == 0:
                return AgentMessage(
                    tool_calls=[
                        _call("log_set", {"exercise_name": "Push-ups", "reps": 10}),
                        _call("get_today_summary"),
                    ]
                )
            return AgentMessage(content="Logged 10 push-ups and pulled today's totals.")
        if self.scenario == FakeScenario.MALFORMED_ARGS:
            if round_index == 0:
                return AgentMessage(tool_calls=[_call("log_set", "{exercise_name: pushups")])
            return AgentMessage(content="I could not read those arguments.")
        if self.scenario == FakeScenario.UNKNOWN_TOOL:
            if round_index == 0:
                return AgentMessage(tool_calls=[_call("drop_everything")])
            return AgentMessage(content="That tool does not exist.")
        if self.scenario == FakeScenario.PROVIDER_ERROR:
            raise LLMRequestError(provider="fake", model=self.model, message="provider unavailable", status_code=503)
        if self.scenario == FakeScenario.TOOL_THEN_ERROR:
            if round_index == 0:
                return AgentMessage(tool_calls=[_call("get_today_summary")])
            raise LLMRequestError(provider="fake", model=self.model, message="provider dropped the stream")
        if self.scenario == FakeScenario.SLOW:
            await asyncio.sleep(5)
            return AgentMessage(content="too late")
        if self.scenario == FakeScenario.LOOP:
            return AgentMessage(tool_calls=[_call("show_workspace", call_id=f"call_{round_index}")])
        raise ValueError("Unknown fake scenario")


class FakeCoachStore:
    """In-memory CoachDataStore for a single user.

    Async reads and writes hand back copies like the SQL store; the sync
    add_* helpers return the stored records so tests can inspect them.
    """

    def __init__(self, user_id: int = 1, email: str = "athlete@test.com") -> None:
        self.user_id = user_id
        self.user = UserRecord(id=user_id, email=email)
        self.exercises: dict[int, ExerciseRecord] = {}
        self.sets: dict[int, SetRecord] = {}
        self.fail_on: set[str] = set()
        self._next_exercise_id = 1
        self._next_set_id = 1

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise StoreError(f"simulated {operation} failure")

    def add_exercise(
        self, name: str, muscle_groups: Optional[list[str]] = None, archived: bool = False
    ) -> ExerciseRecord:
        record = ExerciseRecord(
            id=self._next_exercise_id,
            name=name,
            muscle_groups=list(muscle_groups or []),
            deleted_at=utcnow() if archived else None,
            created_at=utcnow(),
        )
        self.exercises[record.id] = record
        self._next_exercise_id += 1
        return record

    def add_set(self, exercise_id: int, performed_at: Optional[datetime] = None, **fields: Any) -> SetRecord:
        record = SetRecord(
            id=self._next_set_id,
            exercise_id=exercise_id,
            performed_at=performed_at or utcnow(),
            **fields,
        )
        self.sets[record.id] = record
        self._next_set_id += 1
        return record

    async def get_user(self) -> UserRecord:
        self._check("get_user")
        return copy.deepcopy(self.user)

    async def patch_user(self, **changes: Any) -> UserRecord:
        self._check("patch_user")
        unknown = set(changes) - USER_PATCH_FIELDS
        if unknown:
            raise StoreError(f"Unsupported user fields: {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            setattr(self.user, key, value)
        return copy.deepcopy(self.user)

    async def list_exercises(self, include_deleted: bool = False) -> list[ExerciseRecord]:
        self._check("list_exercises")
        return [copy.deepcopy(item) for item in self.exercises.values() if include_deleted or not item.archived]

    async def get_exercise(self, exercise_id: int) -> Optional[ExerciseRecord]:
        return copy.deepcopy(self.exercises.get(exercise_id))

    async def insert_exercise(self, name: str) -> ExerciseRecord:
        self._check("insert_exercise")
        return copy.deepcopy(self.add_exercise(name))

    async def patch_exercise(self, exercise_id: int, **changes: Any) -> ExerciseRecord:
        record = self.exercises.get(exercise_id)
        if record is None:
            raise StoreError("Exercise not found")
        for key, value in changes.items():
            setattr(record, key, value)
        return copy.deepcopy(record)

    async def merge_exercise(self, source_id: int, target_id: int) -> int:
        moved = 0
        for entry in self.sets.values():
            if entry.exercise_id == source_id:
                entry.exercise_id = target_id
                moved += 1
        self.exercises[source_id].deleted_at = utcnow()
        return moved

    def _ordered(self, sets: list[SetRecord]) -> list[SetRecord]:
        return sorted(sets, key=lambda item: (item.performed_at, item.id), reverse=True)

    async def list_sets(self, limit: Optional[int] = None) -> list[SetRecord]:
        ordered = self._ordered(list(self.sets.values()))
        return copy.deepcopy(ordered if limit is None else ordered[:limit])

    async def get_set(self, set_id: int) -> Optional[SetRecord]:
        return copy.deepcopy(self.sets.get(set_id))

    async def insert_set(
        self,
        exercise_id: int,
        *,
        reps: Optional[int] = None,
        duration_seconds: Optional[int] = None,
        weight: Optional[float] = None,
        unit: Optional[str] = None,
        performed_at: Optional[datetime] = None,
    ) -> SetRecord:
        self._check("insert_set")
        if exercise_id not in self.exercises:
            raise StoreError("Exercise not found")
        return copy.deepcopy(
            self.add_set(
                exercise_id,
                performed_at=performed_at,
                reps=reps,
                duration_seconds=duration_seconds,
                weight=weight,
                unit=unit,
            )
        )

    async def delete_set(self, set_id: int) -> bool:
        return self.sets.pop(set_id, None) is not None

    async def sets_for_range(self, start: datetime, end: datetime) -> list[SetRecord]:
        self._check("sets_for_range")
        return copy.deepcopy(self._ordered([item for item in self.sets.values() if start <= item.performed_at < end]))

    async def recent_sets_for_exercise(self, exercise_id: int, limit: int = 120) -> list[SetRecord]:
        matching = [item for item in self.sets.values() if item.exercise_id == exercise_id]
        return copy.deepcopy(self._ordered(matching)[:limit])


class FakeInsights:
    def __init__(
        self,
        focus: Optional[list[FocusSuggestion]] = None,
        reports: Optional[list[ReportSummary]] = None,
        subscription: Optional[SubscriptionStatus] = None,
    ) -> None:
        self.focus = focus or []
        self.reports = reports or []
        self.subscription = subscription or SubscriptionStatus(status="trial", has_access=True, trial_days_remaining=5)

    async def get_focus_suggestions(self) -> list[FocusSuggestion]:
        return list(self.focus)

    async def get_dashboard_analytics(self) -> DashboardAnalytics:
        return DashboardAnalytics(
            frequency=[],
            streak_stats=StreakStats(current_streak=3, longest_streak=5, total_workouts=12),
            recent_prs=[],
            focus_suggestions=list(self.focus),
            progressive_overload=[],
        )

    async def get_report_history(self, limit: int = 8) -> list[ReportSummary]:
        return self.reports[:limit]

    async def get_subscription_status(self) -> SubscriptionStatus:
        return self.subscription


def make_context(
    store: Optional[FakeCoachStore] = None,
    insights: Optional[FakeInsights] = None,
    undo: Optional[UndoLedger] = None,
    turn_id: str = "turn-1",
    **overrides: Any,
) -> ToolContext:
    store = store or FakeCoachStore()
    return ToolContext(
        store=store,
        insights=insights or FakeInsights(),
        user_id=store.user_id,
        turn_id=turn_id,
        undo=undo,
        **overrides,
    )


def parse_sse(body: str) -> list[dict[str, Any]]:
    events = []
    for frame in body.split("\n\n"):
        data_lines = [line[len("data: "):] for line in frame.splitlines() if line.startswith("data: ")]
        if data_lines:
            events.append(json.loads("\n".join(data_lines)))
    return events


def turn_payload(text: str, **preferences: Any) -> dict[str, Any]:
    return {
        "messages": [{"role": "user", "content": text}],
        "preferences": {"unit": "lbs", "soundEnabled": True, **preferences},
    }


@pytest.fixture
def fake_store() -> FakeCoachStore:
    return FakeCoachStore()


@pytest.fixture
def undo_ledger() -> UndoLedger:
    return register_undo_handlers(UndoLedger())


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    db_path = tmp_path_factory.mktemp("db") / "volume_coach_test.db"
    configure_database(str(db_path))
    create_tables()
    return db_path


@pytest.fixture(scope="session")
def app(test_db_path: Path):
    from app.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app, undo_ledger):
    app.dependency_overrides = {
        get_agent_runtime: lambda: None,
        get_undo_ledger: lambda: undo_ledger,
        get_rate_limiter: lambda: FixedWindowRateLimiter(limit=1000),
    }
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def db_session(test_db_path: Path):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    def _create_user(**fields: Any) -> User:
        user = User(email=f"user_{uuid4().hex[:10]}@test.com", **fields)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def auth_user(create_user) -> User:
    return create_user(trial_ends_at=utcnow() + timedelta(days=7))


@pytest.fixture
def auth_headers(auth_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(auth_user.id))}"}


@pytest.fixture
def override_runtime(app):
    def _override(scenario: FakeScenario) -> FakeAgentRuntime:
        runtime = FakeAgentRuntime(scenario)
        app.dependency_overrides[get_agent_runtime] = lambda: runtime
        return runtime

    return _override


@pytest.fixture
def override_rate_limit(app):
    def _override(limit: int) -> FixedWindowRateLimiter:
        limiter = FixedWindowRateLimiter(limit=limit)
        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        return limiter

    return _override

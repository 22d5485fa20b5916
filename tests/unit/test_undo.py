import asyncio

import pytest

from conftest import FakeCoachStore
from app.services.undo import UndoConflict, UndoLedger


class Clock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _ledger(clock: Clock, applied: list[str]) -> UndoLedger:
    ledger = UndoLedger(window_seconds=600, clock=clock)

    async def restore_marker(payload: dict, store) -> str:
        if payload.get("stale"):
            raise UndoConflict("conflict", "Target changed.")
        applied.append(payload["marker"])
        return f"Restored {payload['marker']}."

    ledger.register_handler("log_set", restore_marker)
    return ledger


def test_restore_applies_once() -> None:
    clock, applied = Clock(), []
    ledger = _ledger(clock, applied)
    block = ledger.record(turn_id="t1", user_id=1, tool_name="log_set", payload={"marker": "a"}, title="Undo this set")
    assert block.turn_id == "t1"
    assert block.title == "Undo this set"

    result = asyncio.run(ledger.restore(block.action_id, 1, FakeCoachStore()))
    assert result.ok
    assert result.message == "Restored a."
    assert result.to_wire() == {"ok": True, "message": "Restored a.", "actionIds": [block.action_id]}

    again = asyncio.run(ledger.restore(block.action_id, 1, FakeCoachStore()))
    assert again.reason == "already_undone"
    assert applied == ["a"]


def test_restore_rejections() -> None:
    clock, applied = Clock(), []
    ledger = _ledger(clock, applied)
    block = ledger.record(turn_id="t1", user_id=1, tool_name="log_set", payload={"marker": "a"})
    store = FakeCoachStore()

    assert asyncio.run(ledger.restore("missing", 1, store)).reason == "not_found"
    assert asyncio.run(ledger.restore(block.action_id, 1, store, turn_id="other")).reason == "not_found"
    assert asyncio.run(ledger.restore(block.action_id, 2, store)).reason == "forbidden"

    clock.now += 601
    expired = asyncio.run(ledger.restore(block.action_id, 1, store))
    assert expired.reason == "expired"
    assert ledger.get(block.action_id) is None
    assert applied == []


def test_handler_conflict_is_reported() -> None:
    clock, applied = Clock(), []
    ledger = _ledger(clock, applied)
    block = ledger.record(turn_id="t1", user_id=1, tool_name="log_set", payload={"marker": "a", "stale": True})
    result = asyncio.run(ledger.restore(block.action_id, 1, FakeCoachStore()))
    assert not result.ok
    assert result.reason == "conflict"
    assert result.message == "Target changed."
    # Still committed, so a later retry is possible.
    assert ledger.get(block.action_id).status == "committed"


def test_record_requires_handler() -> None:
    ledger = UndoLedger()
    assert not ledger.supports("rename_exercise")
    with pytest.raises(ValueError):
        ledger.record(turn_id="t1", user_id=1, tool_name="rename_exercise", payload={})


def test_restore_turn_runs_newest_first() -> None:
    clock, applied = Clock(), []
    ledger = _ledger(clock, applied)
    first = ledger.record(turn_id="t1", user_id=1, tool_name="log_set", payload={"marker": "first"})
    clock.now += 1
    second = ledger.record(turn_id="t1", user_id=1, tool_name="log_set", payload={"marker": "second"})
    ledger.record(turn_id="t2", user_id=1, tool_name="log_set", payload={"marker": "other turn"})

    result = asyncio.run(ledger.restore_turn("t1", 1, FakeCoachStore()))
    assert result.ok
    assert result.message == "Undid 2 actions."
    assert result.action_ids == [second.action_id, first.action_id]
    assert applied == ["second", "first"]


def test_restore_turn_validates_before_applying() -> None:
    clock, applied = Clock(), []
    ledger = _ledger(clock, applied)
    ledger.record(turn_id="t1", user_id=1, tool_name="log_set", payload={"marker": "mine"})
    ledger.record(turn_id="t1", user_id=2, tool_name="log_set", payload={"marker": "theirs"})

    result = asyncio.run(ledger.restore_turn("t1", 1, FakeCoachStore()))
    assert result.reason == "forbidden"
    assert applied == []

    assert asyncio.run(ledger.restore_turn("unknown", 1, FakeCoachStore())).reason == "not_found"


def test_prune_drops_expired_entries() -> None:
    clock, applied = Clock(), []
    ledger = _ledger(clock, applied)
    ledger.record(turn_id="t1", user_id=1, tool_name="log_set", payload={"marker": "a"})
    clock.now += 600
    assert ledger.prune() == 1
    assert ledger.entries_for_turn("t1") == []

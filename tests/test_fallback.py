import asyncio

import pytest

from conftest import FakeCoachStore, make_context
from app.core.turns import FALLBACK_MODEL
from app.services.fallback import (
    DEFAULT_FALLBACK_TEXT,
    FALLBACK_FAILED_TEXT,
    match_admin_command,
    route_message,
    run_deterministic_turn,
)
from app.services.streaming import StreamEventEmitter
from app.tools.catalog import build_registry


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("10 pushups", ("log_set", {"exercise_name": "Push-ups", "reps": 10})),
        ("plank for 45 sec", ("log_set", {"exercise_name": "Plank", "duration_seconds": 45})),
        ("show today's summary", ("get_today_summary", {})),
        ("show trend for squats", ("get_exercise_report", {"exercise_name": "Squats"})),
        ("switch to kg", ("set_weight_unit", {"unit": "kg"})),
        ("turn sound off", ("set_sound", {"enabled": False})),
        ("delete set 12", ("delete_set", {"set_id": "12"})),
        ("Delete set #12.", ("delete_set", {"set_id": "12"})),
        ("delete my last squats set", ("delete_set", {"exercise_name": "squats"})),
        ("show history", ("get_history_overview", {})),
        ("show my report history", ("get_report_history", {})),
        ("help", ("show_workspace", {})),
        ("what should I work on today?", ("get_focus_suggestions", {})),
        ("show me my recent sets", ("get_history_overview", {})),
        ("open billing", ("open_billing", {})),
        ("my preferences", ("get_settings_overview", {})),
        ("quick log", ("show_quick_log", {})),
    ],
)
def test_route_message(text: str, expected: tuple) -> None:
    assert route_message(text) == expected


def test_unmatched_message_has_no_route() -> None:
    assert route_message("purple elephant") is None


def test_admin_commands_parse_arguments() -> None:
    assert match_admin_command("rename exercise pushups to Push Ups") == (
        "rename_exercise",
        {"exercise_name": "pushups", "new_name": "Push Ups"},
    )
    assert match_admin_command("merge exercise situps into crunches") == (
        "merge_exercise",
        {"source_exercise": "situps", "target_exercise": "crunches"},
    )
    assert match_admin_command("set muscle groups for Push-ups: chest, triceps and shoulders") == (
        "update_exercise_muscle_groups",
        {"exercise_name": "Push-ups", "muscle_groups": ["chest", "triceps", "shoulders"]},
    )
    assert match_admin_command("archive exercise Burpees") == ("delete_exercise", {"exercise_name": "Burpees"})
    assert match_admin_command("set training split to push pull legs") == (
        "update_preferences",
        {"training_split": "push pull legs"},
    )


def test_goal_commands() -> None:
    assert match_admin_command("update goals to build muscle and get stronger") == (
        "update_preferences",
        {"goals": ["build_muscle", "get_stronger"]},
    )
    assert match_admin_command("update goal to run a marathon") == (
        "update_preferences",
        {"custom_goal": "run a marathon"},
    )


def test_log_command_streams_tool_events() -> None:
    store = FakeCoachStore()
    emitter = StreamEventEmitter()
    emitter.start(FALLBACK_MODEL)

    response = asyncio.run(run_deterministic_turn("10 pushups", make_context(store), build_registry(), emitter))

    assert response.trace.tools_used == ["log_set"]
    assert response.trace.model == FALLBACK_MODEL
    assert response.trace.fallback_used is True
    assert response.assistant_text == "Logged set for Push-ups."
    assert [block.type for block in response.blocks] == ["status", "metrics", "trend", "suggestions"]
    assert response.blocks[0].title == "Logged 10 push-ups"
    assert emitter.sequence == ["start", "tool_start"] + ["tool_result"] * 4
    assert len(store.sets) == 1


def test_runs_without_emitter() -> None:
    store = FakeCoachStore()
    response = asyncio.run(run_deterministic_turn("10 pushups", make_context(store), build_registry()))

    assert response.assistant_text == "Logged set for Push-ups."
    assert response.trace.tools_used == ["log_set"]
    assert response.blocks[0].title == "Logged 10 push-ups"
    assert len(store.sets) == 1


def test_today_question_routes_to_summary() -> None:
    response = asyncio.run(
        run_deterministic_turn("what did I do today", make_context(), build_registry())
    )
    assert response.trace.tools_used == ["get_today_summary"]
    assert response.blocks[0].title == "No sets logged today"


def test_no_match_returns_static_blocks() -> None:
    response = asyncio.run(run_deterministic_turn("purple elephant", make_context(), build_registry()))
    assert response.trace.tools_used == []
    assert response.assistant_text == DEFAULT_FALLBACK_TEXT
    assert [block.type for block in response.blocks] == ["status", "suggestions"]
    assert response.blocks[0].title == "Try a workout command"


def test_tool_error_stays_inside_response() -> None:
    response = asyncio.run(
        run_deterministic_turn("show trend for deadlifts", make_context(), build_registry())
    )
    assert response.trace.tools_used == ["get_exercise_report"]
    assert response.blocks[0].tone == "error"
    assert response.blocks[0].title == 'I can\'t find "Deadlifts"'


def test_unexpected_failure_becomes_error_block() -> None:
    # An emitter that never started rejects tool events.
    response = asyncio.run(
        run_deterministic_turn("10 pushups", make_context(), build_registry(), StreamEventEmitter())
    )
    assert response.assistant_text == FALLBACK_FAILED_TEXT
    assert response.trace.tools_used == ["log_set"]
    assert len(response.blocks) == 1
    assert response.blocks[0].title == "Tool failed"
    assert "tool_start emitted before start" in response.blocks[0].description

import asyncio
import json

from conftest import FakeAgentRuntime, FakeCoachStore, FakeScenario, make_context
from app.core.turns import CoachMessage
from app.services.planner import STEP_LIMIT_TEXT, history_from_messages, run_planner_turn
from app.services.streaming import StreamEventEmitter
from app.services.undo import UndoLedger
from app.tools.catalog import build_registry, register_undo_handlers


def _run(scenario: FakeScenario, store=None, undo=None, **kwargs):
    runtime = FakeAgentRuntime(scenario)
    store = store or FakeCoachStore()
    emitter = StreamEventEmitter()
    emitter.start(runtime.model)
    result = asyncio.run(
        run_planner_turn(
            runtime=runtime,
            registry=build_registry(),
            ctx=make_context(store, undo=undo),
            messages=[CoachMessage(role="user", content="log 10 pushups and show today")],
            system_prompt="You are Volume Coach.",
            emitter=emitter,
            **kwargs,
        )
    )
    return result, runtime, emitter, store


def test_history_starts_with_system_prompt() -> None:
    history = history_from_messages(
        "system text",
        [CoachMessage(role="user", content="hi"), CoachMessage(role="assistant", content="hello")],
    )
    assert history == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
    ]


def test_text_only_answer() -> None:
    result, runtime, emitter, _ = _run(FakeScenario.TEXT_ONLY)
    assert result.ok
    assert result.assistant_text == "Nice work this week. Keep the streak going."
    assert result.tools_used == []
    assert result.blocks == []
    assert emitter.sequence == ["start"]
    assert len(runtime.calls) == 1
    assert {tool["function"]["name"] for tool in runtime.tools_seen} >= {"log_set", "get_today_summary"}


def test_two_tool_calls_in_one_round() -> None:
    ledger = register_undo_handlers(UndoLedger())
    result, runtime, emitter, store = _run(FakeScenario.LOG_THEN_SUMMARY, undo=ledger)

    assert result.ok
    assert result.tools_used == ["log_set", "get_today_summary"]
    assert result.assistant_text == "Logged 10 push-ups and pulled today's totals."
    assert [block.type for block in result.blocks] == [
        "status",
        "metrics",
        "trend",
        "suggestions",
        "undo",
        "metrics",
        "table",
    ]
    assert emitter.sequence == (
        ["start", "tool_start"] + ["tool_result"] * 5 + ["tool_start", "tool_result"]
    )
    assert len(store.sets) == 1

    second_round = runtime.calls[1]
    assert second_round[-3]["role"] == "assistant"
    assert [call["function"]["name"] for call in second_round[-3]["tool_calls"]] == ["log_set", "get_today_summary"]
    tool_messages = second_round[-2:]
    assert [message["tool_call_id"] for message in tool_messages] == ["call_log_set", "call_get_today_summary"]
    assert json.loads(tool_messages[0]["content"])["status"] == "ok"
    assert json.loads(tool_messages[1]["content"])["total_sets"] == 1


def test_malformed_arguments_become_error_block() -> None:
    result, runtime, emitter, store = _run(FakeScenario.MALFORMED_ARGS)
    assert result.ok
    assert result.tools_used == ["log_set"]
    assert result.blocks[0].tone == "error"
    assert result.blocks[0].description == "Tool arguments were not valid JSON. (tool: log_set)"
    assert store.sets == {}
    assert emitter.sequence == ["start", "tool_start", "tool_result"]
    tool_message = json.loads(runtime.calls[1][-1]["content"])
    assert tool_message == {"status": "error", "tool": "log_set", "error": "Tool arguments were not valid JSON."}


def test_unknown_tool_is_reported_to_model() -> None:
    result, runtime, _, _ = _run(FakeScenario.UNKNOWN_TOOL)
    assert result.ok
    assert result.tools_used == ["drop_everything"]
    assert result.blocks[0].description == "Unsupported tool: drop_everything"
    assert json.loads(runtime.calls[1][-1]["content"])["status"] == "error"


def test_provider_error_before_any_tool() -> None:
    result, _, emitter, _ = _run(FakeScenario.PROVIDER_ERROR)
    assert not result.ok
    assert result.error == "provider unavailable"
    assert result.tools_used == []
    assert not result.timed_out
    assert emitter.sequence == ["start"]


def test_provider_error_after_tool_keeps_blocks() -> None:
    result, _, _, _ = _run(FakeScenario.TOOL_THEN_ERROR)
    assert not result.ok
    assert result.tools_used == ["get_today_summary"]
    assert result.blocks[0].title == "No sets logged today"


def test_turn_deadline() -> None:
    result, _, _, _ = _run(FakeScenario.SLOW, timeout_seconds=0.05)
    assert result.timed_out
    assert result.error == "Coach planner timed out."


def test_round_limit_stops_tool_loop() -> None:
    result, runtime, _, _ = _run(FakeScenario.LOOP, max_rounds=3)
    assert result.ok
    assert result.hit_tool_limit
    assert result.tools_used == ["show_workspace"] * 3
    assert result.assistant_text == STEP_LIMIT_TEXT
    assert result.blocks[-1].title == "Step limit reached"
    assert len(runtime.calls) == 3

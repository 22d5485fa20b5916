"""Outer turn runner: picks a strategy and closes the event stream.

The agent strategy runs when a model runtime is configured, otherwise the
deterministic strategy runs. Both end with exactly one ``final`` event; an
unexpected failure ends with one ``error`` event and ``CoachTurnError``.
"""

import logging
from typing import Optional
from uuid import uuid4

from app.core.agent_prompt import render_coach_system_prompt
from app.core.blocks import tool_error_block
from app.core.sanitize import sanitize_error
from app.core.turns import FALLBACK_MODEL, CoachTurnRequest, CoachTurnResponse, build_turn_response
from app.services.data_store import CoachDataStore, StoreError
from app.services.fallback import run_deterministic_turn
from app.services.insights import CoachInsights
from app.services.llm import AgentRuntime
from app.services.planner import run_planner_turn
from app.services.streaming import StreamEventEmitter
from app.services.undo import UndoLedger
from app.tools.context import ToolContext
from app.tools.registry import ToolRegistry

logger = logging.getLogger("uvicorn.error")

PARTIAL_RESULT_TEXT = "I hit an error while finishing that. Here's what I have so far."


class CoachTurnError(RuntimeError):
    pass


def new_turn_id() -> str:
    return uuid4().hex


async def _system_prompt(request: CoachTurnRequest, store: CoachDataStore) -> str:
    prefs = request.preferences
    training_split = coach_notes = None
    try:
        user = await store.get_user()
        training_split, coach_notes = user.training_split, user.coach_notes
    except StoreError as exc:
        logger.info("coach profile unavailable for prompt user_id=%s error=%s", store.user_id, exc)
    return render_coach_system_prompt(
        unit=prefs.unit,
        sound_enabled=prefs.sound_enabled,
        timezone_offset_minutes=prefs.timezone_offset_minutes or 0,
        training_split=training_split,
        coach_notes=coach_notes,
    )


async def run_coach_turn(
    request: CoachTurnRequest,
    *,
    store: CoachDataStore,
    insights: CoachInsights,
    registry: ToolRegistry,
    runtime: Optional[AgentRuntime],
    undo: Optional[UndoLedger] = None,
    emitter: Optional[StreamEventEmitter] = None,
    turn_id: Optional[str] = None,
) -> CoachTurnResponse:
    emitter = emitter or StreamEventEmitter()
    user_text = request.latest_user_text()
    if user_text is None:
        raise ValueError("Turn request has no user message")

    prefs = request.preferences
    ctx = ToolContext(
        store=store,
        insights=insights,
        user_id=store.user_id,
        turn_id=turn_id or new_turn_id(),
        default_unit=prefs.unit,
        timezone_offset_minutes=prefs.timezone_offset_minutes or 0,
        user_input=user_text,
        undo=undo,
    )

    if runtime is None:
        emitter.start(FALLBACK_MODEL)
        response = await run_deterministic_turn(user_text, ctx, registry, emitter)
        emitter.final(response)
        return response

    emitter.start(runtime.model)
    try:
        planned = await run_planner_turn(
            runtime=runtime,
            registry=registry,
            ctx=ctx,
            messages=request.messages,
            system_prompt=await _system_prompt(request, store),
            emitter=emitter,
        )
        if planned.ok:
            response = build_turn_response(
                assistant_text=planned.assistant_text,
                blocks=planned.blocks,
                tools_used=planned.tools_used,
                model=runtime.model,
                fallback_used=False,
            )
        elif not planned.tools_used and not planned.timed_out:
            logger.warning(
                "coach planner failed, using fallback user_id=%s error=%s", ctx.user_id, planned.error
            )
            fallback = await run_deterministic_turn(user_text, ctx, registry, emitter)
            response = build_turn_response(
                assistant_text=fallback.assistant_text,
                blocks=[tool_error_block(planned.error or "Coach planner failed."), *fallback.blocks],
                tools_used=fallback.trace.tools_used,
                model=f"{fallback.trace.model} (planner_failed)",
                fallback_used=True,
            )
        else:
            logger.warning(
                "coach planner failed after tools user_id=%s tools=%s error=%s",
                ctx.user_id,
                planned.tools_used,
                planned.error,
            )
            response = build_turn_response(
                assistant_text=PARTIAL_RESULT_TEXT,
                blocks=[tool_error_block(planned.error or "Coach planner failed."), *planned.blocks],
                tools_used=planned.tools_used,
                model=f"{runtime.model} (planner_failed_partial)",
                fallback_used=False,
            )
    except Exception as exc:
        logger.exception("coach turn failed user_id=%s turn_id=%s", ctx.user_id, ctx.turn_id)
        message = sanitize_error(str(exc))
        if not emitter.closed:
            emitter.error(message)
        raise CoachTurnError(message) from exc

    emitter.final(response)
    return response

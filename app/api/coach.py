import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ConfigDict, Field, ValidationError

from app.api.auth import get_current_user
from app.core.blocks import CoachModel
from app.core.turns import CoachTurnRequest, describe_request_error
from app.db.models import User
from app.services.coach_turns import CoachTurnError, run_coach_turn
from app.services.data_store import CoachDataStore, get_data_store
from app.services.insights import CoachInsights, get_insights
from app.services.llm import AgentRuntime, get_agent_runtime
from app.services.rate_limit import FixedWindowRateLimiter, get_rate_limiter
from app.services.streaming import (
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    StreamEventEmitter,
    encode_sse,
    sse_padding,
    wants_event_stream,
)
from app.services.undo import UndoLedger, UndoResult, get_undo_ledger
from app.tools.catalog import get_tool_registry
from app.tools.registry import ToolRegistry

router = APIRouter(prefix="/coach", tags=["coach"])
logger = logging.getLogger("uvicorn.error")

UNDO_FAILURE_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "expired": status.HTTP_410_GONE,
}


class UndoActionRequest(CoachModel):
    model_config = ConfigDict(extra="ignore")

    action_id: str = Field(min_length=1, max_length=128)
    turn_id: Optional[str] = Field(default=None, min_length=1, max_length=128)


class UndoTurnRequest(CoachModel):
    model_config = ConfigDict(extra="ignore")

    turn_id: str = Field(min_length=1, max_length=128)


def _bad_request(content: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


def _undo_response(result: UndoResult) -> JSONResponse:
    code = status.HTTP_200_OK if result.ok else UNDO_FAILURE_STATUS.get(result.reason, status.HTTP_409_CONFLICT)
    return JSONResponse(status_code=code, content=result.to_wire())


def _stream_turn(payload: CoachTurnRequest, **turn_kwargs: Any) -> StreamingResponse:
    queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    def send(event: CoachModel) -> None:
        queue.put_nowait(encode_sse(event))
        if event.type == "start":
            queue.put_nowait(sse_padding())

    emitter = StreamEventEmitter(send=send)
    task = asyncio.create_task(run_coach_turn(payload, emitter=emitter, **turn_kwargs))

    def finished(done: asyncio.Task) -> None:
        if not done.cancelled() and done.exception() is not None:
            # The error event has already been queued by the emitter.
            logger.info("coach stream ended with error error=%s", done.exception())
        queue.put_nowait(None)

    task.add_done_callback(finished)

    async def event_stream():
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    break
                yield chunk
        finally:
            # Client went away: let the turn finish its writes, stop delivering events.
            if not task.done():
                emitter.detach()

    return StreamingResponse(event_stream(), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)


@router.post("/turn")
async def coach_turn(
    request: Request,
    user: User = Depends(get_current_user),
    store: CoachDataStore = Depends(get_data_store),
    insights: CoachInsights = Depends(get_insights),
    registry: ToolRegistry = Depends(get_tool_registry),
    runtime: Optional[AgentRuntime] = Depends(get_agent_runtime),
    undo: UndoLedger = Depends(get_undo_ledger),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _bad_request({"error": "Invalid request body", "constraint": "body", "detail": "Body must be JSON."})

    try:
        payload = CoachTurnRequest.model_validate(body)
    except ValidationError as exc:
        return _bad_request(describe_request_error(exc))
    if payload.latest_user_text() is None:
        return _bad_request(
            {"error": "Invalid request body", "constraint": "message", "detail": "Missing user message."}
        )

    decision = limiter.check(f"user:{user.id}")
    if not decision.allowed:
        logger.info("coach turn rate limited user_id=%s", user.id)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Rate limit exceeded", "retryAfterSeconds": decision.retry_after_seconds},
            headers=decision.headers(),
        )

    turn_kwargs = {
        "store": store,
        "insights": insights,
        "registry": registry,
        "runtime": runtime,
        "undo": undo,
    }
    if wants_event_stream(request.headers.get("accept")):
        return _stream_turn(payload, **turn_kwargs)

    try:
        response = await run_coach_turn(payload, **turn_kwargs)
    except CoachTurnError as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Coach turn failed", "detail": str(exc)},
        )
    return JSONResponse(content=response.to_wire(), headers=decision.headers())


@router.post("/undo")
async def undo_action(
    payload: UndoActionRequest,
    user: User = Depends(get_current_user),
    store: CoachDataStore = Depends(get_data_store),
    ledger: UndoLedger = Depends(get_undo_ledger),
) -> JSONResponse:
    result = await ledger.restore(payload.action_id, user.id, store, turn_id=payload.turn_id)
    return _undo_response(result)


@router.post("/undo-turn")
async def undo_turn(
    payload: UndoTurnRequest,
    user: User = Depends(get_current_user),
    store: CoachDataStore = Depends(get_data_store),
    ledger: UndoLedger = Depends(get_undo_ledger),
) -> JSONResponse:
    result = await ledger.restore_turn(payload.turn_id, user.id, store)
    return _undo_response(result)


@router.get("/tools")
def list_tools(
    user: User = Depends(get_current_user),
    registry: ToolRegistry = Depends(get_tool_registry),
) -> dict[str, Any]:
    return {"tools": registry.catalog()}

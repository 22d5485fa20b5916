import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from app.core.blocks import CoachModel, StatusBlock, tool_error_block
from app.core.sanitize import sanitize_error
from app.core.turns import CoachMessage
from app.services.llm import AgentRuntime, LLMRequestError
from app.services.streaming import StreamEventEmitter
from app.tools.context import ToolContext
from app.tools.registry import ToolRegistry

logger = logging.getLogger("uvicorn.error")

COACH_MAX_TOOL_ROUNDS = int(os.getenv("COACH_MAX_TOOL_ROUNDS", "6"))
COACH_TURN_TIMEOUT_SECONDS = float(os.getenv("COACH_TURN_TIMEOUT_SECONDS", "60"))

STEP_LIMIT_TEXT = "I hit a step limit while finishing that. Here is what I have so far."


@dataclass
class PlannerResult:
    assistant_text: str
    blocks: list[CoachModel] = field(default_factory=list)
    tools_used: list[str] = field(default_factory=list)
    error: Optional[str] = None
    timed_out: bool = False
    hit_tool_limit: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def step_limit_block() -> StatusBlock:
    return StatusBlock(
        tone="info",
        title="Step limit reached",
        description="I stopped early to avoid an infinite tool loop. Ask a follow-up and I will continue.",
    )


def history_from_messages(system_prompt: str, messages: list[CoachMessage]) -> list[dict[str, Any]]:
    return [{"role": "system", "content": system_prompt}] + [
        {"role": message.role, "content": message.content} for message in messages
    ]


def _tool_message(call_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"role": "tool", "tool_call_id": call_id, "content": json.dumps(payload, default=str)}


async def run_planner_turn(
    *,
    runtime: AgentRuntime,
    registry: ToolRegistry,
    ctx: ToolContext,
    messages: list[CoachMessage],
    system_prompt: str,
    emitter: StreamEventEmitter,
    max_rounds: int = COACH_MAX_TOOL_ROUNDS,
    timeout_seconds: float = COACH_TURN_TIMEOUT_SECONDS,
) -> PlannerResult:
    """Let the model drive the tool registry until it answers in plain text.

    Model failures end the loop and come back as ``PlannerResult.error`` with
    whatever blocks were already produced. Tool failures never end the loop;
    dispatch turns them into error blocks and the model sees the error output.
    """
    history = history_from_messages(system_prompt, messages)
    catalog = registry.catalog()
    result = PlannerResult(assistant_text="")
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds

    for round_index in range(max_rounds):
        remaining = deadline - loop.time()
        if remaining <= 0:
            result.error = "Coach planner timed out."
            result.timed_out = True
            return result

        try:
            message = await asyncio.wait_for(runtime.complete(history, catalog), timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning("coach planner timed out model=%s round=%s", runtime.model, round_index)
            result.error = "Coach planner timed out."
            result.timed_out = True
            return result
        except LLMRequestError as exc:
            logger.warning(
                "coach planner model error model=%s status=%s error=%s", exc.model, exc.status_code, exc
            )
            result.error = sanitize_error(str(exc))
            return result
        except Exception as exc:
            logger.warning("coach planner failed model=%s error=%r", runtime.model, exc)
            result.error = sanitize_error(str(exc))
            return result

        if not message.tool_calls:
            result.assistant_text = (message.content or "").strip()
            return result

        history.append(message.to_history())
        for call in message.tool_calls:
            result.tools_used.append(call.name)
            emitter.tool_start(call.name)

            try:
                raw_args = json.loads(call.arguments or "{}")
            except json.JSONDecodeError:
                logger.info("coach planner invalid tool args tool=%s", call.name)
                error_block = tool_error_block(f"Tool arguments were not valid JSON. (tool: {call.name})")
                result.blocks.append(error_block)
                emitter.tool_result(call.name, [error_block])
                history.append(
                    _tool_message(
                        call.id,
                        {"status": "error", "tool": call.name, "error": "Tool arguments were not valid JSON."},
                    )
                )
                continue

            dispatched = await registry.dispatch(call.name, raw_args, ctx, on_blocks=emitter.tool_result)
            result.blocks.extend(dispatched.blocks)
            history.append(_tool_message(call.id, dispatched.for_model()))

    logger.info("coach planner hit tool round limit rounds=%s user_id=%s", max_rounds, ctx.user_id)
    result.hit_tool_limit = True
    result.assistant_text = result.assistant_text or STEP_LIMIT_TEXT
    result.blocks.append(step_limit_block())
    return result

"""Deterministic turn strategy: no model, one routed tool call per message.

Routing order is fixed: anchored admin/navigation commands, then the intent
parser, then loose keyword checks, then the static no-match response.
"""

import logging
import re
from typing import Any, Callable, Optional

from app.core.blocks import CoachModel, tool_error_block
from app.core.intent import CoachIntent, normalize_whitespace, parse_coach_intent
from app.core.sanitize import sanitize_error
from app.core.turns import FALLBACK_MODEL, CoachTurnResponse, build_turn_response, no_match_blocks
from app.services.streaming import StreamEventEmitter
from app.tools.context import ToolContext
from app.tools.registry import ToolRegistry

logger = logging.getLogger("uvicorn.error")

DEFAULT_FALLBACK_TEXT = "I can help with logging, summaries, reports, and focus suggestions."
FALLBACK_FAILED_TEXT = "Fallback execution failed."

ToolCall = tuple[str, dict[str, Any]]

_GOAL_RE = re.compile(r"\b(build[ _]muscle|lose[ _]weight|maintain[ _]fitness|get[ _]stronger)\b", re.IGNORECASE)
_LIST_SPLIT_RE = re.compile(r"\s*(?:,|\band\b|&|/)\s*", re.IGNORECASE)
_TRAILING_PUNCTUATION_RE = re.compile(r"[.!?]+$")


def _split_list(raw: str) -> list[str]:
    return [item for item in _LIST_SPLIT_RE.split(raw.strip()) if item]


def _goals_call(match: re.Match) -> ToolCall:
    text = match.group(1).strip()
    goals: list[str] = []
    for found in _GOAL_RE.findall(text):
        goal = found.lower().replace(" ", "_")
        if goal not in goals:
            goals.append(goal)
    if goals:
        return "update_preferences", {"goals": goals}
    return "update_preferences", {"custom_goal": text}


def _static(tool_name: str, args: Optional[dict[str, Any]] = None) -> Callable[[re.Match], ToolCall]:
    return lambda match: (tool_name, dict(args or {}))


ADMIN_COMMANDS: list[tuple[re.Pattern, Callable[[re.Match], ToolCall]]] = [
    (
        re.compile(r"^rename exercise (.+?) to (.+)$", re.IGNORECASE),
        lambda m: ("rename_exercise", {"exercise_name": m.group(1), "new_name": m.group(2)}),
    ),
    (
        re.compile(r"^merge exercise (.+?) into (.+)$", re.IGNORECASE),
        lambda m: ("merge_exercise", {"source_exercise": m.group(1), "target_exercise": m.group(2)}),
    ),
    (
        re.compile(r"^(?:delete|archive) exercise (.+)$", re.IGNORECASE),
        lambda m: ("delete_exercise", {"exercise_name": m.group(1)}),
    ),
    (
        re.compile(r"^restore exercise (.+)$", re.IGNORECASE),
        lambda m: ("restore_exercise", {"exercise_name": m.group(1)}),
    ),
    (
        re.compile(r"^delete set #?(\d+)$", re.IGNORECASE),
        lambda m: ("delete_set", {"set_id": m.group(1)}),
    ),
    (
        re.compile(r"^delete (?:the |my )?(?:last|latest) (.+?) set$", re.IGNORECASE),
        lambda m: ("delete_set", {"exercise_name": m.group(1)}),
    ),
    (
        re.compile(r"^set muscle groups for (.+?):\s*(.+)$", re.IGNORECASE),
        lambda m: (
            "update_exercise_muscle_groups",
            {"exercise_name": m.group(1), "muscle_groups": _split_list(m.group(2))},
        ),
    ),
    (
        re.compile(r"^set training split to (.+)$", re.IGNORECASE),
        lambda m: ("update_preferences", {"training_split": m.group(1)}),
    ),
    (
        re.compile(r"^set coach notes to (.+)$", re.IGNORECASE),
        lambda m: ("update_preferences", {"coach_notes": m.group(1)}),
    ),
    (re.compile(r"^update goals? to (.+)$", re.IGNORECASE), _goals_call),
    (re.compile(r"^show (?:my )?history(?: overview)?$", re.IGNORECASE), _static("get_history_overview")),
    (re.compile(r"^show (?:my )?analytics(?: overview)?$", re.IGNORECASE), _static("get_analytics_overview")),
    (re.compile(r"^show (?:my )?(?:exercise )?library$", re.IGNORECASE), _static("get_exercise_library")),
    (re.compile(r"^show (?:my )?settings(?: overview)?$", re.IGNORECASE), _static("get_settings_overview")),
    (re.compile(r"^show (?:my )?report history$", re.IGNORECASE), _static("get_report_history")),
    (re.compile(r"^(?:show (?:the )?workspace|help)$", re.IGNORECASE), _static("show_workspace")),
]

KEYWORD_ROUTES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b(work on|focus|improve|today plan|what should i do)\b"), "get_focus_suggestions"),
    (re.compile(r"\b(report history|past reports|ai reports?)\b"), "get_report_history"),
    (re.compile(r"\b(history|recent sets)\b"), "get_history_overview"),
    (re.compile(r"\b(analytics|streaks?|prs|personal records?)\b"), "get_analytics_overview"),
    (re.compile(r"\b(library|my exercises)\b"), "get_exercise_library"),
    (re.compile(r"\b(billing|subscription|upgrade|checkout)\b"), "open_billing"),
    (re.compile(r"\b(settings|preferences|goals)\b"), "get_settings_overview"),
    (re.compile(r"\b(quick log|log form)\b"), "show_quick_log"),
    (re.compile(r"\b(help|workspace|what can you do)\b"), "show_workspace"),
]


def match_admin_command(text: str) -> Optional[ToolCall]:
    cleaned = _TRAILING_PUNCTUATION_RE.sub("", normalize_whitespace(text))
    for pattern, build in ADMIN_COMMANDS:
        match = pattern.match(cleaned)
        if match:
            return build(match)
    return None


def intent_to_call(intent: CoachIntent) -> Optional[ToolCall]:
    if intent.type == "log_set":
        args = {
            "exercise_name": intent.exercise_name,
            "reps": intent.reps,
            "duration_seconds": intent.duration_seconds,
            "weight": intent.weight,
            "unit": intent.unit,
        }
        return "log_set", {key: value for key, value in args.items() if value is not None}
    if intent.type == "today_summary":
        return "get_today_summary", {}
    if intent.type == "exercise_report":
        return "get_exercise_report", {"exercise_name": intent.exercise_name}
    if intent.type == "set_weight_unit":
        return "set_weight_unit", {"unit": intent.unit}
    if intent.type == "set_sound":
        return "set_sound", {"enabled": intent.enabled}
    return None


def match_keyword_route(text: str) -> Optional[ToolCall]:
    lowered = text.lower()
    for pattern, tool_name in KEYWORD_ROUTES:
        if pattern.search(lowered):
            return tool_name, {}
    return None


def route_message(text: str) -> Optional[ToolCall]:
    return match_admin_command(text) or intent_to_call(parse_coach_intent(text)) or match_keyword_route(text)


async def run_deterministic_turn(
    user_input: str,
    ctx: ToolContext,
    registry: ToolRegistry,
    emitter: Optional[StreamEventEmitter] = None,
) -> CoachTurnResponse:
    """Route one message to at most one tool. Events are emitted only when an emitter is given."""
    tools_used: list[str] = []
    blocks: list[CoachModel] = []
    assistant_text = DEFAULT_FALLBACK_TEXT

    try:
        call = route_message(user_input)
        if call is None:
            blocks = no_match_blocks()
        else:
            tool_name, args = call
            tools_used.append(tool_name)
            if emitter is not None:
                emitter.tool_start(tool_name)
            result = await registry.dispatch(
                tool_name, args, ctx, on_blocks=emitter.tool_result if emitter is not None else None
            )
            blocks = result.blocks
            assistant_text = result.summary
    except Exception as exc:
        logger.warning("coach fallback failed user_id=%s error=%r", ctx.user_id, exc)
        blocks = [tool_error_block(sanitize_error(str(exc)))]
        assistant_text = FALLBACK_FAILED_TEXT

    return build_turn_response(
        assistant_text=assistant_text,
        blocks=blocks,
        tools_used=tools_used,
        model=FALLBACK_MODEL,
        fallback_used=True,
    )

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from app.core.blocks import CoachBlock, CoachModel, StatusBlock, SuggestionsBlock, WeightUnit

MAX_COACH_MESSAGES = 30
MAX_MESSAGE_CHARS = 4000
MAX_TOTAL_MESSAGE_CHARS = 50_000
MAX_ASSISTANT_TEXT_CHARS = 4000

FALLBACK_MODEL = "fallback-deterministic"

DEFAULT_COACH_SUGGESTIONS = [
    "10 pushups",
    "show today's summary",
    "what should I work on today?",
    "show trend for squats",
]


class _RequestModel(CoachModel):
    # Clients may send fields this service does not read.
    model_config = ConfigDict(extra="ignore")


class CoachMessage(_RequestModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_CHARS)

    @model_validator(mode="before")
    @classmethod
    def strip_content(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("content"), str):
            return {**data, "content": data["content"].strip()}
        return data


class CoachPreferences(_RequestModel):
    unit: WeightUnit
    sound_enabled: bool
    timezone_offset_minutes: Optional[int] = Field(default=None, ge=-840, le=840)


class CoachTurnRequest(_RequestModel):
    messages: list[CoachMessage] = Field(min_length=1, max_length=MAX_COACH_MESSAGES)
    preferences: CoachPreferences

    @model_validator(mode="after")
    def validate_total_size(self):
        total = sum(len(message.content) for message in self.messages)
        if total > MAX_TOTAL_MESSAGE_CHARS:
            raise ValueError(f"Conversation too large (max {MAX_TOTAL_MESSAGE_CHARS} characters).")
        return self

    def latest_user_text(self) -> Optional[str]:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return None


class TurnTrace(CoachModel):
    tools_used: list[str]
    model: str
    fallback_used: bool


class CoachTurnResponse(CoachModel):
    assistant_text: str = Field(max_length=MAX_ASSISTANT_TEXT_CHARS)
    blocks: list[CoachBlock]
    trace: TurnTrace


class StartEvent(CoachModel):
    type: Literal["start"] = "start"
    model: str


class ToolStartEvent(CoachModel):
    type: Literal["tool_start"] = "tool_start"
    tool_name: str


class ToolResultEvent(CoachModel):
    type: Literal["tool_result"] = "tool_result"
    tool_name: str
    blocks: list[CoachBlock]


class FinalEvent(CoachModel):
    type: Literal["final"] = "final"
    response: CoachTurnResponse


class ErrorEvent(CoachModel):
    type: Literal["error"] = "error"
    message: str


CoachStreamEvent = Annotated[
    Union[StartEvent, ToolStartEvent, ToolResultEvent, FinalEvent, ErrorEvent],
    Field(discriminator="type"),
]

_stream_event_adapter: TypeAdapter = TypeAdapter(CoachStreamEvent)


def parse_stream_event(data: Any) -> CoachModel:
    return _stream_event_adapter.validate_python(data)


def default_suggestions_block() -> SuggestionsBlock:
    return SuggestionsBlock(prompts=list(DEFAULT_COACH_SUGGESTIONS))


def no_match_blocks() -> list[CoachModel]:
    return [
        StatusBlock(
            tone="info",
            title="Try a workout command",
            description="This fallback mode only handles core flows.",
        ),
        default_suggestions_block(),
    ]


def build_turn_response(
    *,
    assistant_text: str,
    blocks: list[CoachModel],
    tools_used: list[str],
    model: str,
    fallback_used: bool,
) -> CoachTurnResponse:
    text = assistant_text.strip() or "Done. I used your workout data and generated updates below."
    final_blocks = blocks if blocks else [default_suggestions_block()]
    # Re-validate so every returned response is schema-conformant, not just well-typed.
    return CoachTurnResponse.model_validate(
        {
            "assistantText": text[:MAX_ASSISTANT_TEXT_CHARS],
            "blocks": [block.to_wire() for block in final_blocks],
            "trace": {"toolsUsed": list(tools_used), "model": model, "fallbackUsed": fallback_used},
        }
    )


def describe_request_error(exc: ValidationError) -> dict[str, str]:
    """Collapse a request ValidationError into the single top-level constraint it violated."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = tuple(first.get("loc", ()))
    error_type = str(first.get("type", ""))
    message = str(first.get("msg", "Invalid request body"))

    if not loc:
        constraint = "total_size" if "too large" in message.lower() else "body"
    elif loc[0] == "messages" and len(loc) == 1:
        constraint = "message_count" if error_type in {"too_short", "too_long"} else "body"
    elif loc[0] == "messages":
        constraint = "message"
    elif loc[0] == "preferences":
        constraint = "preferences"
    else:
        constraint = "body"

    return {"error": "Invalid request body", "constraint": constraint, "detail": message}

"""Renderable coach blocks.

Every block a turn can return is one member of a closed, tagged union keyed by
``type``. Field names are snake_case in Python and camelCase on the wire
(``bestDay``, ``emptyLabel``, ``actionId`` ...); dump with ``by_alias=True``.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

WeightUnit = Literal["lbs", "kg"]

TITLE_MAX = 200
DESCRIPTION_MAX = 2000
SHORT_DESCRIPTION_MAX = 400
PROMPT_MAX = 200
SUGGESTION_PROMPTS_MAX = 8
PANEL_PROMPTS_MAX = 6
TABLE_ROWS_MAX = 50
TREND_POINTS_MAX = 90
ENTITY_ITEMS_MAX = 50


class CoachModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StatusBlock(CoachModel):
    type: Literal["status"] = "status"
    tone: Literal["success", "error", "info"]
    title: str = Field(max_length=TITLE_MAX)
    description: str = Field(max_length=DESCRIPTION_MAX)


class MetricItem(CoachModel):
    label: str = Field(max_length=100)
    value: str = Field(max_length=100)
    unit: Optional[str] = Field(default=None, max_length=16)


class MetricsBlock(CoachModel):
    type: Literal["metrics"] = "metrics"
    title: str = Field(max_length=TITLE_MAX)
    metrics: list[MetricItem] = Field(max_length=12)


class TrendPoint(CoachModel):
    date: str = Field(max_length=32)
    label: str = Field(max_length=32)
    value: float


class TrendBlock(CoachModel):
    type: Literal["trend"] = "trend"
    title: str = Field(max_length=TITLE_MAX)
    subtitle: str = Field(max_length=TITLE_MAX)
    metric: Literal["reps", "duration"]
    points: list[TrendPoint] = Field(max_length=TREND_POINTS_MAX)
    total: float
    best_day: float


class TableRow(CoachModel):
    label: str = Field(max_length=120)
    value: str = Field(max_length=120)
    meta: Optional[str] = Field(default=None, max_length=200)


class TableBlock(CoachModel):
    type: Literal["table"] = "table"
    title: str = Field(max_length=TITLE_MAX)
    rows: list[TableRow] = Field(max_length=TABLE_ROWS_MAX)


class SuggestionsBlock(CoachModel):
    type: Literal["suggestions"] = "suggestions"
    prompts: list[Annotated[str, Field(max_length=PROMPT_MAX)]] = Field(max_length=SUGGESTION_PROMPTS_MAX)


class EntityItem(CoachModel):
    id: Optional[str] = Field(default=None, max_length=128)
    title: str = Field(max_length=TITLE_MAX)
    subtitle: Optional[str] = Field(default=None, max_length=SHORT_DESCRIPTION_MAX)
    meta: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[list[Annotated[str, Field(max_length=40)]]] = Field(default=None, max_length=6)
    prompt: Optional[str] = Field(default=None, max_length=PROMPT_MAX)


class EntityListBlock(CoachModel):
    type: Literal["entity_list"] = "entity_list"
    title: str = Field(max_length=TITLE_MAX)
    description: Optional[str] = Field(default=None, max_length=SHORT_DESCRIPTION_MAX)
    empty_label: Optional[str] = Field(default=None, max_length=200)
    items: list[EntityItem] = Field(max_length=ENTITY_ITEMS_MAX)


class DetailField(CoachModel):
    label: str = Field(max_length=100)
    value: str = Field(max_length=SHORT_DESCRIPTION_MAX)
    emphasis: Optional[bool] = None


class DetailPanelBlock(CoachModel):
    type: Literal["detail_panel"] = "detail_panel"
    title: str = Field(max_length=TITLE_MAX)
    description: Optional[str] = Field(default=None, max_length=SHORT_DESCRIPTION_MAX)
    fields: list[DetailField] = Field(max_length=12)
    prompts: Optional[list[Annotated[str, Field(max_length=PROMPT_MAX)]]] = Field(
        default=None, max_length=PANEL_PROMPTS_MAX
    )


class BillingPanelBlock(CoachModel):
    type: Literal["billing_panel"] = "billing_panel"
    status: Literal["trial", "active", "past_due", "canceled", "expired"]
    title: str = Field(max_length=TITLE_MAX)
    subtitle: Optional[str] = Field(default=None, max_length=SHORT_DESCRIPTION_MAX)
    trial_days_remaining: Optional[int] = Field(default=None, ge=0)
    period_end: Optional[str] = Field(default=None, max_length=64)
    cta_label: Optional[str] = Field(default=None, max_length=80)
    cta_action: Optional[Literal["open_checkout", "open_billing_portal"]] = None


class QuickLogFormBlock(CoachModel):
    type: Literal["quick_log_form"] = "quick_log_form"
    title: str = Field(max_length=TITLE_MAX)
    exercise_name: Optional[str] = Field(default=None, max_length=80)
    default_unit: Optional[WeightUnit] = None


class ConfirmationLabels(CoachModel):
    confirm: Optional[str] = Field(default=None, max_length=40)
    cancel: Optional[str] = Field(default=None, max_length=40)


class ConfirmationBlock(CoachModel):
    type: Literal["confirmation"] = "confirmation"
    title: str = Field(max_length=TITLE_MAX)
    description: str = Field(max_length=SHORT_DESCRIPTION_MAX)
    confirm_prompt: str = Field(max_length=PROMPT_MAX)
    cancel_prompt: Optional[str] = Field(default=None, max_length=PROMPT_MAX)
    labels: Optional[ConfirmationLabels] = None


class _StrictPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)


class WeightUnitPayload(_StrictPayload):
    unit: WeightUnit


class SoundPayload(_StrictPayload):
    enabled: bool


class CheckoutPayload(_StrictPayload):
    mode: Literal["checkout"]


class BillingPortalPayload(_StrictPayload):
    mode: Literal["portal"]


CLIENT_ACTION_PAYLOADS: dict[str, type[_StrictPayload]] = {
    "set_weight_unit": WeightUnitPayload,
    "set_sound": SoundPayload,
    "open_checkout": CheckoutPayload,
    "open_billing_portal": BillingPortalPayload,
}

_PAYLOAD_SHAPES = {
    "set_weight_unit": "{ unit }",
    "set_sound": "{ enabled }",
    "open_checkout": '{ mode: "checkout" }',
    "open_billing_portal": '{ mode: "portal" }',
}


class ClientActionBlock(CoachModel):
    type: Literal["client_action"] = "client_action"
    action: Literal["set_weight_unit", "set_sound", "open_checkout", "open_billing_portal"]
    payload: dict[str, Any]

    @model_validator(mode="after")
    def validate_payload_matches_action(self):
        payload_model = CLIENT_ACTION_PAYLOADS[self.action]
        try:
            payload_model.model_validate(self.payload)
        except ValidationError as exc:
            raise ValueError(f"{self.action} payload must be {_PAYLOAD_SHAPES[self.action]}.") from exc
        return self


class UndoBlock(CoachModel):
    type: Literal["undo"] = "undo"
    action_id: str = Field(min_length=1, max_length=128)
    turn_id: str = Field(min_length=1, max_length=128)
    title: Optional[str] = Field(default=None, max_length=TITLE_MAX)
    description: Optional[str] = Field(default=None, max_length=SHORT_DESCRIPTION_MAX)


CoachBlock = Annotated[
    Union[
        StatusBlock,
        MetricsBlock,
        TrendBlock,
        TableBlock,
        SuggestionsBlock,
        EntityListBlock,
        DetailPanelBlock,
        BillingPanelBlock,
        QuickLogFormBlock,
        ConfirmationBlock,
        ClientActionBlock,
        UndoBlock,
    ],
    Field(discriminator="type"),
]

BLOCK_TYPES = (
    "status",
    "metrics",
    "trend",
    "table",
    "suggestions",
    "entity_list",
    "detail_panel",
    "billing_panel",
    "quick_log_form",
    "confirmation",
    "client_action",
    "undo",
)

_block_adapter: TypeAdapter = TypeAdapter(CoachBlock)
_block_list_adapter: TypeAdapter = TypeAdapter(list[CoachBlock])


def parse_block(data: Any) -> CoachModel:
    return _block_adapter.validate_python(data)


def parse_blocks(data: Any) -> list[CoachModel]:
    return _block_list_adapter.validate_python(data)


def blocks_to_wire(blocks: list[CoachModel]) -> list[dict[str, Any]]:
    return [block.to_wire() for block in blocks]


def tool_error_block(message: str) -> StatusBlock:
    return StatusBlock(tone="error", title="Tool failed", description=message[:DESCRIPTION_MAX])


def client_action(action: str, payload: dict[str, Any]) -> ClientActionBlock:
    return ClientActionBlock(action=action, payload=payload)

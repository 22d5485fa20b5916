from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from app.core.blocks import CoachModel
from app.core.records import WeightUnit
from app.services.data_store import CoachDataStore
from app.services.insights import CoachInsights

if TYPE_CHECKING:
    from app.services.undo import UndoLedger

BlockSink = Callable[[list[CoachModel]], None]


@dataclass
class ToolResult:
    summary: str
    blocks: list[CoachModel]
    output_for_model: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolContext:
    """Everything a tool may touch during one turn, already scoped to the caller."""

    store: CoachDataStore
    insights: CoachInsights
    user_id: int
    turn_id: str
    default_unit: WeightUnit = "lbs"
    timezone_offset_minutes: int = 0
    user_input: str = ""
    undo: Optional["UndoLedger"] = None
    sink: Optional[BlockSink] = None

    def emit(self, blocks: list[CoachModel]) -> None:
        """Forward blocks to the live stream before the tool returns."""
        if self.sink is not None and blocks:
            self.sink(list(blocks))

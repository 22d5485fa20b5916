"""Per-turn stream event sequencing and Server-Sent Events framing.

A turn produces ``start``, then any number of ``tool_start``/``tool_result``
pairs, then exactly one ``final`` or ``error``. ``StreamEventEmitter`` enforces
that order; with no ``send`` callback it only tracks state, which is how the
plain JSON endpoint runs the same orchestration code.
"""

import json
import os
from typing import Callable, Optional

from app.core.blocks import CoachModel
from app.core.turns import (
    CoachTurnResponse,
    ErrorEvent,
    FinalEvent,
    StartEvent,
    ToolResultEvent,
    ToolStartEvent,
)

COACH_SSE_PADDING_BYTES = int(os.getenv("COACH_SSE_PADDING_BYTES", "2048"))

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Content-Type": "text/event-stream; charset=utf-8",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

EventSink = Callable[[CoachModel], None]


class StreamOrderError(RuntimeError):
    pass


class StreamEventEmitter:
    def __init__(self, send: Optional[EventSink] = None) -> None:
        self._send = send
        self.started = False
        self.closed = False
        self.detached = False
        self.current_tool: Optional[str] = None
        self.sequence: list[str] = []

    def _emit(self, event: CoachModel) -> None:
        self.sequence.append(event.type)
        if self._send is not None and not self.detached:
            self._send(event)

    def _require_open(self, what: str) -> None:
        if not self.started:
            raise StreamOrderError(f"{what} emitted before start")
        if self.closed:
            raise StreamOrderError(f"{what} emitted after the terminal event")

    def detach(self) -> None:
        """Stop delivering events; state keeps advancing so the turn can finish."""
        self.detached = True

    def start(self, model: str) -> None:
        if self.started:
            raise StreamOrderError("start emitted twice")
        self.started = True
        self._emit(StartEvent(model=model))

    def tool_start(self, tool_name: str) -> None:
        self._require_open("tool_start")
        self.current_tool = tool_name
        self._emit(ToolStartEvent(tool_name=tool_name))

    def tool_result(self, tool_name: str, blocks: list[CoachModel]) -> None:
        self._require_open("tool_result")
        if tool_name != self.current_tool:
            raise StreamOrderError(f"tool_result for {tool_name} without a matching tool_start")
        self._emit(ToolResultEvent.model_validate({"toolName": tool_name, "blocks": [b.to_wire() for b in blocks]}))

    def final(self, response: CoachTurnResponse) -> None:
        self._require_open("final")
        self.closed = True
        self.current_tool = None
        self._emit(FinalEvent(response=response))

    def error(self, message: str) -> None:
        self._require_open("error")
        self.closed = True
        self.current_tool = None
        self._emit(ErrorEvent(message=message))


def wants_event_stream(accept: Optional[str]) -> bool:
    return SSE_MEDIA_TYPE in (accept or "").lower()


def encode_sse(event: CoachModel) -> str:
    data = event.to_wire()
    body = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return f"event: {data['type']}\ndata: {body}\n\n"


def encode_sse_comment(text: str = "") -> str:
    return f":{text}\n\n"


def sse_padding(size: int = COACH_SSE_PADDING_BYTES) -> str:
    """A comment frame large enough to push proxies into flushing their buffers."""
    return encode_sse_comment(" " * max(size, 0))

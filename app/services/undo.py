"""In-memory ledger of reversible coach actions.

The ledger mints ``(action_id, turn_id)`` pairs and keeps the restore payload
until the undo window closes. Restore logic lives with the tool that made the
change and is registered here per tool name.
"""

import logging
import os
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Literal, Optional
from uuid import uuid4

from app.core.blocks import UndoBlock
from app.core.sanitize import sanitize_error
from app.services.data_store import CoachDataStore

logger = logging.getLogger("uvicorn.error")

UNDO_WINDOW_SECONDS = int(os.getenv("COACH_UNDO_WINDOW_SECONDS", "600"))

UndoReason = Literal[
    "not_found",
    "expired",
    "already_undone",
    "forbidden",
    "unsupported_action",
    "conflict",
    "missing_target",
]

UndoHandler = Callable[[dict[str, Any], CoachDataStore], Awaitable[str]]


class UndoConflict(Exception):
    """Raised by a restore handler when the target no longer matches its snapshot."""

    def __init__(self, reason: UndoReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


@dataclass
class UndoEntry:
    action_id: str
    turn_id: str
    user_id: int
    tool_name: str
    payload: dict[str, Any]
    created_at: float
    expires_at: float
    status: Literal["committed", "undone"] = "committed"


@dataclass
class UndoResult:
    ok: bool
    message: str
    reason: Optional[UndoReason] = None
    action_ids: list[str] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        data = asdict(self)
        data["actionIds"] = data.pop("action_ids")
        if data["reason"] is None:
            data.pop("reason")
        return data


class UndoLedger:
    def __init__(
        self,
        window_seconds: int = UNDO_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: dict[str, UndoEntry] = {}
        self._handlers: dict[str, UndoHandler] = {}
        self._lock = threading.Lock()

    def register_handler(self, tool_name: str, handler: UndoHandler) -> None:
        self._handlers[tool_name] = handler

    def supports(self, tool_name: str) -> bool:
        return tool_name in self._handlers

    def prune(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def record(
        self,
        *,
        turn_id: str,
        user_id: int,
        tool_name: str,
        payload: dict[str, Any],
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> UndoBlock:
        if tool_name not in self._handlers:
            raise ValueError(f"No undo handler registered for {tool_name}")
        self.prune()
        now = self._clock()
        entry = UndoEntry(
            action_id=uuid4().hex,
            turn_id=turn_id,
            user_id=user_id,
            tool_name=tool_name,
            payload=dict(payload),
            created_at=now,
            expires_at=now + self.window_seconds,
        )
        with self._lock:
            self._entries[entry.action_id] = entry
        return UndoBlock(action_id=entry.action_id, turn_id=turn_id, title=title, description=description)

    def get(self, action_id: str) -> Optional[UndoEntry]:
        with self._lock:
            return self._entries.get(action_id)

    def entries_for_turn(self, turn_id: str) -> list[UndoEntry]:
        with self._lock:
            entries = [entry for entry in self._entries.values() if entry.turn_id == turn_id]
        return sorted(entries, key=lambda item: item.created_at, reverse=True)

    def _check(self, entry: Optional[UndoEntry], user_id: int, turn_id: Optional[str]) -> Optional[UndoResult]:
        if entry is None or (turn_id is not None and entry.turn_id != turn_id):
            return UndoResult(ok=False, reason="not_found", message="That action is no longer available to undo.")
        if entry.user_id != user_id:
            return UndoResult(ok=False, reason="forbidden", message="That action belongs to another user.")
        if entry.status == "undone":
            return UndoResult(ok=False, reason="already_undone", message="That action was already undone.")
        if entry.expires_at <= self._clock():
            with self._lock:
                self._entries.pop(entry.action_id, None)
            return UndoResult(ok=False, reason="expired", message="The undo window for that action has closed.")
        if entry.tool_name not in self._handlers:
            return UndoResult(
                ok=False, reason="unsupported_action", message=f"{entry.tool_name} cannot be undone."
            )
        return None

    async def _apply(self, entry: UndoEntry, store: CoachDataStore) -> UndoResult:
        handler = self._handlers[entry.tool_name]
        try:
            message = await handler(entry.payload, store)
        except UndoConflict as exc:
            logger.info("coach undo rejected action_id=%s reason=%s", entry.action_id, exc.reason)
            return UndoResult(ok=False, reason=exc.reason, message=exc.message, action_ids=[entry.action_id])
        except Exception as exc:
            logger.warning("coach undo failed action_id=%s error=%r", entry.action_id, exc)
            return UndoResult(
                ok=False, reason="conflict", message=sanitize_error(str(exc)), action_ids=[entry.action_id]
            )
        entry.status = "undone"
        logger.info("coach undo applied action_id=%s tool=%s", entry.action_id, entry.tool_name)
        return UndoResult(ok=True, message=message, action_ids=[entry.action_id])

    async def restore(
        self, action_id: str, user_id: int, store: CoachDataStore, turn_id: Optional[str] = None
    ) -> UndoResult:
        entry = self.get(action_id)
        rejected = self._check(entry, user_id, turn_id)
        self.prune()
        if rejected is not None:
            return rejected
        return await self._apply(entry, store)

    async def restore_turn(self, turn_id: str, user_id: int, store: CoachDataStore) -> UndoResult:
        """Undo every live action of a turn, newest first. Nothing runs unless all are valid."""
        entries = [entry for entry in self.entries_for_turn(turn_id) if entry.status == "committed"]
        if not entries:
            return UndoResult(ok=False, reason="not_found", message="Nothing from that turn can be undone.")
        for entry in entries:
            rejected = self._check(entry, user_id, turn_id)
            if rejected is not None:
                return rejected
        self.prune()

        undone: list[str] = []
        for entry in entries:
            result = await self._apply(entry, store)
            if not result.ok:
                result.action_ids = undone + result.action_ids
                return result
            undone.append(entry.action_id)
        noun = "action" if len(undone) == 1 else "actions"
        return UndoResult(ok=True, message=f"Undid {len(undone)} {noun}.", action_ids=undone)


_ledger = UndoLedger()


def get_undo_ledger() -> UndoLedger:
    return _ledger

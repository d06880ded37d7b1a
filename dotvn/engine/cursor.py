from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from ..script.model import START_CONVERSATION, Script, Unit


@dataclass
class CursorState:
    conversation: str = START_CONVERSATION
    index: int = 0
    units_completed: int = 0

    def to_dict(self) -> dict:
        return {
            "conversation": self.conversation,
            "index": self.index,
            "units_completed": self.units_completed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CursorState":
        return cls(
            conversation=str(data.get("conversation", START_CONVERSATION)),
            index=int(data.get("index", 0)),
            units_completed=int(data.get("units_completed", 0)),
        )


class Cursor:
    """Position inside the current conversation.

    ``index == len(conversation)`` marks exhaustion; the owner decides whether
    that ends the session.
    """

    def __init__(self, script: Script, conversation: str = START_CONVERSATION) -> None:
        self._script = script
        self._units: Tuple[Unit, ...] = script.lookup(conversation)
        self.state = CursorState(conversation=conversation)

    @property
    def conversation(self) -> str:
        return self.state.conversation

    @property
    def index(self) -> int:
        return self.state.index

    @property
    def units_completed(self) -> int:
        return self.state.units_completed

    def __len__(self) -> int:
        return len(self._units)

    @property
    def exhausted(self) -> bool:
        return self.state.index >= len(self._units)

    def current(self) -> Optional[Unit]:
        if self.exhausted:
            return None
        return self._units[self.state.index]

    def advance(self, count: int = 1) -> None:
        room = len(self._units) - self.state.index
        step = max(0, min(count, room))
        self.state.index += step
        self.state.units_completed += step

    def skip(self) -> None:
        """Pass over the current unit without counting it as executed."""
        if not self.exhausted:
            self.state.index += 1

    def jump(self, index: int) -> None:
        self.state.index = max(0, min(int(index), len(self._units)))

    def switch_conversation(self, conversation: str) -> None:
        # lookup first so a failed switch leaves the cursor untouched
        units = self._script.lookup(conversation)
        self._units = units
        self.state = CursorState(conversation=conversation)

    def rebind(self, script: Script, state: CursorState) -> None:
        """Point at ``script`` and adopt a saved position (clamped to bounds)."""
        units = script.lookup(state.conversation)
        self._script = script
        self._units = units
        self.state = CursorState(
            conversation=state.conversation,
            index=max(0, min(state.index, len(units))),
            units_completed=max(0, state.units_completed),
        )

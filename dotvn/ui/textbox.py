from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional


@dataclass(frozen=True)
class Line:
    name: Optional[str]
    text: str
    conversation: Optional[str] = None


class Textbox:
    """Backlog of lines the engine has displayed, newest last.

    ``view_idx`` is -1 while following the newest line; scrolling pins it to
    an older entry until it scrolls back down past the end.
    """

    def __init__(self, capacity: int = 500) -> None:
        self.capacity = max(1, int(capacity))
        self._lines: Deque[Line] = deque(maxlen=self.capacity)
        self.view_idx: int = -1

    @property
    def history(self) -> List[Line]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def push(self, name: Optional[str], text: str, conversation: Optional[str] = None) -> None:
        self._lines.append(Line(name, text, conversation))
        self.view_idx = -1

    def current(self) -> Optional[Line]:
        if not self._lines:
            return None
        if self.view_idx == -1:
            return self._lines[-1]
        return self._lines[min(self.view_idx, len(self._lines) - 1)]

    def scroll_up(self, n: int = 1) -> None:
        if not self._lines:
            return
        start = len(self._lines) - 1 if self.view_idx == -1 else self.view_idx
        self.view_idx = max(0, start - n)

    def scroll_down(self, n: int = 1) -> None:
        if self.view_idx == -1:
            return
        self.view_idx += n
        if self.view_idx >= len(self._lines) - 1:
            self.view_idx = -1

    def lines_in(self, conversation: str) -> List[Line]:
        return [ln for ln in self._lines if ln.conversation == conversation]

    def tail(self, n: int) -> List[Line]:
        if n <= 0:
            return []
        return list(self._lines)[-n:]

    def clear(self) -> None:
        self._lines.clear()
        self.view_idx = -1

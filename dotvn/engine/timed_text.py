"""
Timed text: cinematic auto-advance and typewriter reveal.

Both disciplines are driven by ``tick(dt)`` from the owning loop, never by
``Engine.step``. They are mutually exclusive; enabling one switches the
other off.

- Cinematic: a tick counter starts when a line is shown; at the frame
  threshold an implicit advance fires. Real input may beat it only when
  ``input_allowed``.
- Typewriter: ``revealed`` grows by ``chars_per_second * dt`` and is clamped
  to the line length. With ``can_skip`` the first input reveals the whole line.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CinematicState:
    threshold_frames: int = 0
    input_allowed: bool = False
    counter: int = 0

    @property
    def enabled(self) -> bool:
        return self.threshold_frames > 0


@dataclass
class TypewriterState:
    chars_per_second: int = 0
    can_skip: bool = True
    full_text: str = ""
    progress: float = 0.0
    revealed: int = 0

    @property
    def enabled(self) -> bool:
        return self.chars_per_second > 0

    @property
    def complete(self) -> bool:
        return self.revealed >= len(self.full_text)

    def reveal_all(self) -> None:
        self.revealed = len(self.full_text)
        self.progress = float(self.revealed)


class TimedTextController:
    def __init__(self, frame_rate: int = 60) -> None:
        self.frame_rate = max(1, int(frame_rate))
        self.cinematic = CinematicState()
        self.typewriter = TypewriterState()
        self.showing = False
        # set by tick()/on_input() when the visible substring changed
        self.revealed_changed = False

    # --- configuration ---
    def configure_cinematic(self, seconds: float, input_allowed: bool = False) -> None:
        frames = int(round(float(seconds) * self.frame_rate)) if seconds and seconds > 0 else 0
        self.cinematic = CinematicState(threshold_frames=frames, input_allowed=bool(input_allowed))
        if self.cinematic.enabled:
            self.typewriter.chars_per_second = 0

    def configure_typewriter(self, chars_per_second: int, can_skip: bool = True) -> None:
        cps = max(0, int(chars_per_second))
        self.typewriter.chars_per_second = cps
        self.typewriter.can_skip = bool(can_skip)
        if cps > 0:
            self.cinematic = CinematicState()
        else:
            self.typewriter.reveal_all()

    # --- line lifecycle ---
    def begin_line(self, text: str) -> None:
        self.showing = True
        self.cinematic.counter = 0
        tw = self.typewriter
        tw.full_text = text
        tw.progress = 0.0
        tw.revealed = 0
        if not tw.enabled:
            tw.reveal_all()
        self.revealed_changed = False

    def end_line(self) -> None:
        self.showing = False

    @property
    def visible_text(self) -> str:
        tw = self.typewriter
        return tw.full_text[:tw.revealed]

    # --- per tick ---
    def tick(self, dt: float) -> bool:
        """Advance timers; returns True when a cinematic auto-advance fires."""
        self.revealed_changed = False
        if not self.showing:
            return False
        tw = self.typewriter
        if tw.enabled and not tw.complete:
            tw.progress += tw.chars_per_second * max(0.0, float(dt))
            revealed = min(int(tw.progress), len(tw.full_text))
            if revealed != tw.revealed:
                tw.revealed = revealed
                self.revealed_changed = True
        if self.cinematic.enabled:
            self.cinematic.counter += 1
            if self.cinematic.counter >= self.cinematic.threshold_frames:
                self.showing = False
                return True
        return False

    def on_input(self) -> bool:
        """Filter real input; returns True when it should advance the line."""
        self.revealed_changed = False
        if not self.showing:
            return True
        if self.cinematic.enabled and not self.cinematic.input_allowed:
            return False
        tw = self.typewriter
        if tw.enabled and not tw.complete:
            if tw.can_skip:
                tw.reveal_all()
                self.revealed_changed = True
            return False
        return True

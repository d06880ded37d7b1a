from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class IntentKind(str, Enum):
    SHOW_BACKGROUND = "show_background"
    MOVE_BACKGROUND = "move_background"
    SCALE_BACKGROUND = "scale_background"
    SHOW_SPRITE = "show_sprite"
    REMOVE_SPRITE = "remove_sprite"
    MOVE_SPRITE = "move_sprite"
    PLACE_SPRITE = "place_sprite"
    FLIP_SPRITE = "flip_sprite"
    SCALE_SPRITE = "scale_sprite"
    PLAY_SOUND = "play_sound"
    PLAY_MUSIC = "play_music"
    STOP_MUSIC = "stop_music"
    FADE_BEGIN = "fade_begin"
    FADE_END = "fade_end"
    SHOW_TEXT = "show_text"
    REVEAL_TEXT = "reveal_text"
    SPEECH_VISIBILITY = "speech_visibility"
    SET_SPEECHBOX = "set_speechbox"
    UI_OVERRIDE = "ui_override"
    SHOW_CHOICES = "show_choices"
    CLEAR_CHOICES = "clear_choices"


@dataclass
class Intent:
    """One-way instruction to the rendering/audio collaborator.

    ``effect_id`` is set for blocking effects; the collaborator must answer
    with ``Engine.effect_finished(effect_id)``.
    """
    kind: IntentKind
    payload: Dict[str, Any] = field(default_factory=dict)
    effect_id: Optional[int] = None

    @property
    def blocking(self) -> bool:
        return self.effect_id is not None

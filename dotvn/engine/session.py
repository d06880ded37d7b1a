"""Session state and the safe-save window.

The live session is always current. Right before an effect or a choice menu
runs, a deep copy (the *safe snapshot*) is taken; persistence reads that copy
until the blocking sub-mode ends, so a save never lands mid-effect.
"""
from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

from .cursor import Cursor, CursorState
from .flags import Flags

SNAPSHOT_VERSION = 1


@dataclass
class SpriteState:
    filename: str
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    flipped_x: bool = False
    flipped_y: bool = False


@dataclass
class SceneRecord:
    """What is on screen / playing, as resolved from every intent so far."""
    background: Optional[str] = None
    background_x: float = 0.0
    background_y: float = 0.0
    background_scale: float = 1.0
    sprites: Dict[str, SpriteState] = field(default_factory=dict)
    sprite_aliases: Dict[str, Optional[str]] = field(default_factory=dict)
    music: Optional[str] = None
    music_loop: bool = True
    speaker: Optional[str] = None
    speech: Optional[str] = None
    show_speech: bool = True
    speechbox: Optional[str] = None
    faded_out: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SceneRecord":
        data = dict(data or {})
        sprites = {str(k): SpriteState(**v) for k, v in (data.pop("sprites", None) or {}).items()}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(sprites=sprites, **known)


@dataclass
class UiOverrides:
    speech_font: Optional[str] = None
    speech_font_size: Optional[float] = None
    speaker_font: Optional[str] = None
    speaker_font_size: Optional[float] = None
    cinematic_seconds: float = 0.0
    cinematic_input_allowed: bool = False
    typewriter_cps: int = 0
    typewriter_can_skip: bool = True
    choicebox_offset_x: float = 0.0
    choicebox_offset_y: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UiOverrides":
        return cls(**{k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__})


ChoiceSets = Dict[str, List[Tuple[str, str]]]


@dataclass
class SessionSnapshot:
    script: str
    cursor: CursorState
    flags: Dict[str, int] = field(default_factory=dict)
    ui: UiOverrides = field(default_factory=UiOverrides)
    scene: SceneRecord = field(default_factory=SceneRecord)
    choice_sets: ChoiceSets = field(default_factory=dict)
    version: int = SNAPSHOT_VERSION

    def to_dict(self) -> dict:
        return {
            "script": self.script,
            "cursor": self.cursor.to_dict(),
            "flags": dict(self.flags),
            "ui": self.ui.to_dict(),
            "scene": self.scene.to_dict(),
            "choice_sets": {k: [list(pair) for pair in v] for k, v in self.choice_sets.items()},
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionSnapshot":
        return cls(
            script=str(data.get("script") or ""),
            cursor=CursorState.from_dict(data.get("cursor") or {}),
            flags={str(k): int(v) for k, v in (data.get("flags") or {}).items()},
            ui=UiOverrides.from_dict(data.get("ui") or {}),
            scene=SceneRecord.from_dict(data.get("scene") or {}),
            choice_sets={str(k): [(str(t), str(c)) for t, c in v] for k, v in (data.get("choice_sets") or {}).items()},
            version=int(data.get("version", SNAPSHOT_VERSION)),
        )


class SessionState:
    def __init__(self, cursor: Cursor, script_name: str = "", flags: Optional[Flags] = None) -> None:
        self.cursor = cursor
        self.script_name = script_name
        self.flags = flags or Flags()
        self.ui = UiOverrides()
        self.scene = SceneRecord()
        self.choice_sets: ChoiceSets = {}
        self._safe: Optional[SessionSnapshot] = None

    def live_snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            script=self.script_name,
            cursor=copy.deepcopy(self.cursor.state),
            flags=self.flags.as_dict(),
            ui=copy.deepcopy(self.ui),
            scene=copy.deepcopy(self.scene),
            choice_sets=copy.deepcopy(self.choice_sets),
        )

    # --- safe save ---
    @property
    def has_safe(self) -> bool:
        return self._safe is not None

    def capture_safe(self) -> None:
        # repeated captures before a release simply overwrite
        self._safe = self.live_snapshot()

    def release_safe(self) -> None:
        self._safe = None

    def snapshot_for_persist(self) -> SessionSnapshot:
        if self._safe is not None:
            return copy.deepcopy(self._safe)
        return self.live_snapshot()

    def adopt(self, snapshot: SessionSnapshot) -> None:
        """Take over everything but the cursor (which needs the script to rebind)."""
        self.script_name = snapshot.script
        self.flags.replace(snapshot.flags)
        self.ui = copy.deepcopy(snapshot.ui)
        self.scene = copy.deepcopy(snapshot.scene)
        self.choice_sets = copy.deepcopy(snapshot.choice_sets)
        self._safe = None

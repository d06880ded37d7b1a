from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

from .errors import NavigationError


START_CONVERSATION = "start"


class CommandKind(str, Enum):
    """Closed set of script commands; values are the script keywords."""

    ADD_SPRITE = "addsprite"
    REMOVE_SPRITE = "removesprite"
    ALIGN_SPRITE = "alignsprite"
    MOVE_SPRITE = "movesprite"
    SET_SPRITE_POSITION = "setspriteposition"
    FLIP_SPRITE = "flipsprite"
    SCALE_SPRITE = "scalesprite"
    SET_SPRITE_ALIAS = "setspritealias"
    SET_BACKGROUND = "setbackground"
    MOVE_BACKGROUND = "movebackground"
    SCALE_BACKGROUND = "scalebackground"
    FADE_IN = "fadein"
    FADE_OUT = "fadeout"
    PLAY_SOUND = "playsound"
    PLAY_MUSIC = "playmusic"
    SET_SPEAKER = "setspeaker"
    SHOW_SPEECH = "showspeech"
    SET_SPEECHBOX = "setspeechbox"
    SET_SPEECH_FONT = "setspeechfont"
    SET_SPEECH_FONT_SIZE = "setspeechfontsize"
    SET_SPEAKER_FONT = "setspeakerfont"
    SET_SPEAKER_FONT_SIZE = "setspeakerfontsize"
    SET_CINEMATIC_TEXT = "setcinematictext"
    SET_TYPEWRITER_TEXT = "settypewritertext"
    MODIFY_CHOICEBOX_OFFSET = "modifychoiceboxoffset"
    SET_CONVERSATION = "setconversation"
    SWITCH_SCRIPT = "switchscript"
    SET_FLAG = "setflag"
    MODIFY_FLAG = "modifyflag"
    INCREASE_FLAG_BY_FLAG = "increaseflagbyflag"
    DECREASE_FLAG_BY_FLAG = "decreaseflagbyflag"
    ROLL_DICE = "rolldice"
    IS_FLAG = "isflag"
    IS_FLAG_MORE_THAN = "isflagmorethan"
    IS_FLAG_LESS_THAN = "isflaglessthan"
    IS_FLAG_BETWEEN = "isflagbetween"
    IS_FLAG_MORE_THAN_FLAG = "isflagmorethanflag"
    IS_FLAG_LESS_THAN_FLAG = "isflaglessthanflag"
    IS_FLAG_EQUAL_TO_FLAG = "isflagequaltoflag"
    JUMP_ON_FLAG = "jumponflag"
    JUMP_ON_CHOICE = "jumponchoice"
    MODIFY_FLAG_BY_CHOICE = "modifyflagbychoice"
    SHOW_CHOICE_AND_JUMP = "showchoiceandjump"
    SHOW_CHOICE_AND_MODIFY = "showchoiceandmodify"
    ADD_TO_CHOICE_SET = "addtochoiceset"
    REMOVE_FROM_CHOICE_SET = "removefromchoiceset"
    WIPE_CHOICE_SET = "wipechoiceset"
    SHOW_CHOICE_SET = "showchoiceset"
    SYSTEM_CALL = "systemcall"


@dataclass(frozen=True)
class FlagRef:
    """Parameter naming a flag (as opposed to a literal string)."""
    name: str

    def __str__(self) -> str:
        return self.name


Value = Union[str, int, float, bool, FlagRef, None]


@dataclass(frozen=True)
class Dialogue:
    text: str
    speaker: Optional[str] = None
    line: int = 0


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    args: Tuple[Value, ...] = ()
    line: int = 0

    def groups(self, start: int, size: int) -> Iterator[Tuple[Value, ...]]:
        """Iterate fixed-size groups of args beginning at ``start``."""
        for i in range(start, len(self.args), size):
            yield self.args[i:i + size]


Unit = Union[Dialogue, Command]


class Script:
    """Compiled script: conversation name -> ordered units. Immutable."""

    def __init__(self, conversations: Mapping[str, Sequence[Unit]], name: str = "") -> None:
        self.name = name
        frozen: Dict[str, Tuple[Unit, ...]] = {k: tuple(v) for k, v in conversations.items()}
        self._conversations = MappingProxyType(frozen)

    @property
    def conversations(self) -> Mapping[str, Tuple[Unit, ...]]:
        return self._conversations

    def lookup(self, conversation: str) -> Tuple[Unit, ...]:
        try:
            return self._conversations[conversation]
        except KeyError:
            raise NavigationError(f"Unknown conversation: {conversation}", context=self.name or None) from None

    def __contains__(self, conversation: Any) -> bool:
        return conversation in self._conversations

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Script):
            return NotImplemented
        return self.name == other.name and dict(self._conversations) == dict(other._conversations)

    def __repr__(self) -> str:
        return f"Script(name={self.name!r}, conversations={len(self._conversations)})"

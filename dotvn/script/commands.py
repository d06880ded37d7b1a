"""Command keyword table.

Each keyword maps to a :class:`CommandKind` and a parameter layout: a fixed
head of typed parameters (trailing ones may be optional) and, for the choice
and jump families, a repeated group that must appear whole at least once.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import ArityError, ParameterError
from .model import CommandKind, FlagRef, Value


COMMAND_SENTINEL = "."
SEPARATOR = ":"
NIL_TOKEN = "nil"

_REQUIRED = object()

_TRUE_WORDS = {"yes", "true", "1"}
_FALSE_WORDS = {"no", "false", "0"}


class ParamType(Enum):
    STR = "str"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    FLAG = "flag"


@dataclass(frozen=True)
class Param:
    name: str
    type: ParamType = ParamType.STR
    nullable: bool = False
    default: object = _REQUIRED

    @property
    def required(self) -> bool:
        return self.default is _REQUIRED


@dataclass(frozen=True)
class Layout:
    head: Tuple[Param, ...] = ()
    repeat: Tuple[Param, ...] = ()

    @property
    def min_count(self) -> int:
        n = sum(1 for p in self.head if p.required)
        return n + len(self.repeat)

    def expected(self) -> str:
        if self.repeat:
            return f"{len(self.head)}+{len(self.repeat)}n"
        lo = self.min_count
        hi = len(self.head)
        return str(lo) if lo == hi else f"{lo}-{hi}"

    def accepts(self, count: int) -> bool:
        if not self.repeat:
            return self.min_count <= count <= len(self.head)
        extra = count - len(self.head)
        return extra >= len(self.repeat) and extra % len(self.repeat) == 0

    def param_at(self, index: int) -> Param:
        if index < len(self.head):
            return self.head[index]
        return self.repeat[(index - len(self.head)) % len(self.repeat)]


def _s(name: str, nullable: bool = False, default: object = _REQUIRED) -> Param:
    return Param(name, ParamType.STR, nullable, default)


def _i(name: str, default: object = _REQUIRED) -> Param:
    return Param(name, ParamType.INT, default=default)


def _f(name: str, default: object = _REQUIRED) -> Param:
    return Param(name, ParamType.FLOAT, default=default)


def _b(name: str, default: object = _REQUIRED) -> Param:
    return Param(name, ParamType.BOOL, default=default)


def _flag(name: str = "flag") -> Param:
    return Param(name, ParamType.FLAG)


K = CommandKind

LAYOUTS: Dict[CommandKind, Layout] = {
    K.ADD_SPRITE: Layout((_s("name"), _b("appear_at_once", False))),
    K.REMOVE_SPRITE: Layout((_s("name"), _b("remove_at_once", False))),
    K.ALIGN_SPRITE: Layout((_s("name"), _s("alignment"), _f("duration", 0.5))),
    K.MOVE_SPRITE: Layout((_s("name"), _f("dx"), _f("dy"), _f("duration", 0.5))),
    K.SET_SPRITE_POSITION: Layout((_s("name"), _f("x"), _f("y"))),
    K.FLIP_SPRITE: Layout((_s("name"), _f("duration", 0.5), _b("horizontal", True))),
    K.SCALE_SPRITE: Layout((_s("name"), _f("scale"), _f("duration", 0.0))),
    K.SET_SPRITE_ALIAS: Layout((_s("alias"), _s("filename", nullable=True))),
    K.SET_BACKGROUND: Layout((_s("filename", nullable=True),)),
    K.MOVE_BACKGROUND: Layout((_f("dx"), _f("dy"), _f("duration", 0.5), _f("parallax", 0.95))),
    K.SCALE_BACKGROUND: Layout((_f("scale"), _f("duration", 0.0))),
    K.FADE_IN: Layout((_f("duration"),)),
    K.FADE_OUT: Layout((_f("duration"),)),
    K.PLAY_SOUND: Layout((_s("filename"),)),
    K.PLAY_MUSIC: Layout((_s("filename", nullable=True), _b("loop", True))),
    K.SET_SPEAKER: Layout((_s("name", nullable=True),)),
    K.SHOW_SPEECH: Layout((_b("visible"),)),
    K.SET_SPEECHBOX: Layout((_s("filename"), _f("duration", 0.0))),
    K.SET_SPEECH_FONT: Layout((_s("font", nullable=True),)),
    K.SET_SPEECH_FONT_SIZE: Layout((_f("size"),)),
    K.SET_SPEAKER_FONT: Layout((_s("font", nullable=True),)),
    K.SET_SPEAKER_FONT_SIZE: Layout((_f("size"),)),
    K.SET_CINEMATIC_TEXT: Layout((_f("seconds"), _b("input_allowed", False))),
    K.SET_TYPEWRITER_TEXT: Layout((_i("chars_per_second"), _b("can_skip", True))),
    K.MODIFY_CHOICEBOX_OFFSET: Layout((_f("dx"), _f("dy"))),
    K.SET_CONVERSATION: Layout((_s("name"),)),
    K.SWITCH_SCRIPT: Layout((_s("script"), _s("conversation", default="start"))),
    K.SET_FLAG: Layout((_flag(), _i("value"))),
    K.MODIFY_FLAG: Layout((_flag(), _i("delta"))),
    K.INCREASE_FLAG_BY_FLAG: Layout((_flag(), _flag("other"))),
    K.DECREASE_FLAG_BY_FLAG: Layout((_flag(), _flag("other"))),
    K.ROLL_DICE: Layout((_i("sides"), _i("count"), _flag())),
    K.IS_FLAG: Layout((_flag(), _i("value"))),
    K.IS_FLAG_MORE_THAN: Layout((_flag(), _i("value"))),
    K.IS_FLAG_LESS_THAN: Layout((_flag(), _i("value"))),
    K.IS_FLAG_BETWEEN: Layout((_flag(), _i("low"), _i("high"))),
    K.IS_FLAG_MORE_THAN_FLAG: Layout((_flag(), _flag("other"))),
    K.IS_FLAG_LESS_THAN_FLAG: Layout((_flag(), _flag("other"))),
    K.IS_FLAG_EQUAL_TO_FLAG: Layout((_flag(), _flag("other"))),
    K.JUMP_ON_FLAG: Layout((_flag(),), (_i("value"), _s("conversation"))),
    K.JUMP_ON_CHOICE: Layout((), (_s("text"), _s("conversation"))),
    K.MODIFY_FLAG_BY_CHOICE: Layout((), (_s("text"), _flag(), _i("delta"))),
    K.SHOW_CHOICE_AND_JUMP: Layout((_s("line"),), (_s("text"), _s("conversation"))),
    K.SHOW_CHOICE_AND_MODIFY: Layout((_s("line"),), (_s("text"), _flag(), _i("delta"))),
    K.ADD_TO_CHOICE_SET: Layout((_s("set"), _s("text"), _s("conversation"))),
    K.REMOVE_FROM_CHOICE_SET: Layout((_s("set"), _s("text"))),
    K.WIPE_CHOICE_SET: Layout((_s("set"),)),
    K.SHOW_CHOICE_SET: Layout((_s("set"),)),
    K.SYSTEM_CALL: Layout((), (_s("arg", nullable=True),)),
}

KEYWORDS: Dict[str, CommandKind] = {kind.value: kind for kind in LAYOUTS}


def lookup_kind(keyword: str) -> Optional[CommandKind]:
    return KEYWORDS.get(keyword.strip().lower())


def _convert(raw: str, param: Param, kind: CommandKind, line: int) -> Value:
    if raw == NIL_TOKEN:
        if param.nullable:
            return None
        raise ParameterError(f"{kind.value}: '{param.name}' cannot be {NIL_TOKEN}", line)
    t = param.type
    try:
        if t is ParamType.INT:
            return int(raw.strip())
        if t is ParamType.FLOAT:
            return float(raw.strip())
    except ValueError:
        raise ParameterError(f"{kind.value}: '{param.name}' expects {t.value}, got {raw!r}", line) from None
    if t is ParamType.BOOL:
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ParameterError(f"{kind.value}: '{param.name}' expects YES/NO, got {raw!r}", line)
    if t is ParamType.FLAG:
        name = raw.strip()
        if not name:
            raise ParameterError(f"{kind.value}: empty flag name", line)
        return FlagRef(name)
    return raw


def bind_args(kind: CommandKind, raw_args: List[str], line: int = 0, context: Optional[str] = None) -> Tuple[Value, ...]:
    """Check arity, convert each literal, and fill defaults for omitted optionals."""
    layout = LAYOUTS[kind]
    if not layout.accepts(len(raw_args)):
        raise ArityError(kind.value, layout.expected(), len(raw_args), line, context)
    values: List[Value] = [_convert(raw, layout.param_at(i), kind, line) for i, raw in enumerate(raw_args)]
    if not layout.repeat:
        for param in layout.head[len(values):]:
            values.append(param.default)  # type: ignore[arg-type]
    return tuple(values)

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from ..script.commands import LAYOUTS
from ..script.errors import ArityError, ChoiceIndexError, NavigationError, ResourceError, ScriptError
from ..script.model import Command, CommandKind, Dialogue, FlagRef, Script, START_CONVERSATION
from ..ui.textbox import Textbox
from .adapters.scripts import IScriptLibrary
from .adapters.storage import AUTOSAVE_SLOT, ISaveStore
from .config_io import merge_config
from .cursor import Cursor, CursorState
from .event_bus import EventBus
from .intents import Intent, IntentKind
from .renderer import DummyRenderer, IRenderer
from .session import SessionSnapshot, SessionState, SpriteState
from .system_call import DefaultSystemCall, ISystemCall
from .timed_text import TimedTextController

logger = logging.getLogger(__name__)

# a conversation that loops on commands alone would never yield back to the owner
MAX_COMMANDS_PER_STEP = 10000

ALIGNMENTS = {
    "left": 0.25,
    "center": 0.5,
    "right": 0.75,
    "far left": 0.0,
    "extreme left": -0.5,
    "far right": 1.0,
    "extreme right": 1.5,
}


class Mode(str, Enum):
    LOADING = "loading"
    NORMAL = "normal"
    EFFECT_RUNNING = "effect_running"
    AWAITING_CHOICE = "awaiting_choice"
    ENDED = "ended"


@dataclass
class ChoiceOption:
    text: str
    conversation: Optional[str] = None
    flag: Optional[str] = None
    delta: int = 0


K = CommandKind


class Engine:
    def __init__(self, script: Script, renderer: Optional[IRenderer] = None, *,
                 save_store: Optional[ISaveStore] = None,
                 system_call: Optional[ISystemCall] = None,
                 library: Optional[IScriptLibrary] = None,
                 config: Optional[dict] = None,
                 rng: Optional[random.Random] = None,
                 strict: bool = False,
                 on_finished: Optional[Callable[["Engine"], None]] = None) -> None:
        self.script = script
        self.renderer = renderer or DummyRenderer()
        self.save_store = save_store
        self.library = library
        self.system_call = system_call or DefaultSystemCall(autosave=self.autosave)
        self.config = merge_config(config)
        self.rng = rng or random.Random()
        self.strict = strict
        self.on_finished = on_finished
        # event bus (pub/sub)
        self.events = EventBus()
        # backlog of displayed lines
        self.textbox = Textbox()
        self.cursor = Cursor(script)
        self.session = SessionState(self.cursor, script.name)
        self.timed_text = TimedTextController(frame_rate=int(self.config["view"]["frame_rate"]))
        self.mode = Mode.LOADING
        self.error: Optional[ScriptError] = None
        self._awaiting_advance = False
        self._effect: Optional[Intent] = None
        self._effect_seq = 0
        self._choice: Optional[List[ChoiceOption]] = None
        self._stepping = False
        self._handlers: Dict[CommandKind, Callable[[Command], bool]] = self._build_handlers()
        self._apply_config_defaults()
        self._enter_loading()

    # --- properties ---
    @property
    def flags(self):
        return self.session.flags

    @property
    def scene(self):
        return self.session.scene

    @property
    def awaiting_advance(self) -> bool:
        return self._awaiting_advance

    @property
    def current_effect(self) -> Optional[Intent]:
        return self._effect

    @property
    def pending_choices(self) -> Optional[List[ChoiceOption]]:
        return list(self._choice) if self._choice is not None else None

    @property
    def finished(self) -> bool:
        return self.mode is Mode.ENDED

    def _apply_config_defaults(self) -> None:
        text = self.config["text"]
        fonts = self.config["fonts"]
        ui = self.session.ui
        ui.speech_font = fonts.get("speech_font")
        ui.speech_font_size = fonts.get("speech_font_size")
        ui.speaker_font = fonts.get("speaker_font")
        ui.speaker_font_size = fonts.get("speaker_font_size")
        ui.typewriter_cps = int(text.get("typewriter_cps") or 0)
        ui.typewriter_can_skip = bool(text.get("typewriter_can_skip", True))
        ui.cinematic_seconds = float(text.get("cinematic_seconds") or 0.0)
        ui.cinematic_input_allowed = bool(text.get("cinematic_input_allowed", False))
        self._configure_timed_text()

    def _configure_timed_text(self) -> None:
        ui = self.session.ui
        # cinematic wins when both are set
        self.timed_text.configure_cinematic(0)
        self.timed_text.configure_typewriter(ui.typewriter_cps, ui.typewriter_can_skip)
        if ui.cinematic_seconds > 0:
            self.timed_text.configure_cinematic(ui.cinematic_seconds, ui.cinematic_input_allowed)

    # --- mode handling ---
    def _set_mode(self, mode: Mode) -> None:
        old = self.mode
        if old is mode:
            return
        self.mode = mode
        logger.debug("mode %s -> %s", old.value, mode.value)
        self.events.emit("engine.mode", old=old.value, new=mode.value)

    def _enter_loading(self) -> None:
        self._set_mode(Mode.LOADING)
        self.events.emit("engine.load", script=self.script.name, conversation=self.cursor.conversation)
        self.renderer.prepare(self.session.scene)

    def resources_ready(self) -> None:
        """Rendering collaborator reports that the initial resources are loaded."""
        if self.mode is not Mode.LOADING:
            logger.warning("resources_ready ignored in mode %s", self.mode.value)
            return
        self._set_mode(Mode.NORMAL)
        self.step()

    def _end(self) -> None:
        if self.mode is Mode.ENDED:
            return
        # in-flight effect/choice state is discarded unconditionally
        self._effect = None
        self._choice = None
        self._awaiting_advance = False
        self.session.release_safe()
        self.timed_text.end_line()
        self._set_mode(Mode.ENDED)
        self.events.emit("engine.end", error=str(self.error) if self.error else None)
        if self.on_finished is not None:
            self.on_finished(self)

    def _fail(self, error: ScriptError) -> None:
        if self.mode is Mode.ENDED:
            return
        self.error = error
        logger.error("session ended: %s", error)
        self.events.emit("engine.error", error=error, kind=type(error).__name__)
        self.renderer.show_error(str(error))
        self._end()
        if self.strict:
            raise error

    def report_resource_error(self, message: str) -> None:
        """Collaborator reports a missing asset; fatal for the session, no retry."""
        self._fail(ResourceError(message, context=self.cursor.conversation))

    # --- stepping ---
    def step(self) -> bool:
        """Run units until a dialogue line, a blocking command, or the end.

        Returns False once the session has ended.
        """
        if self.mode is not Mode.NORMAL or self._awaiting_advance or self._stepping:
            return self.mode is not Mode.ENDED
        self._stepping = True
        try:
            budget = MAX_COMMANDS_PER_STEP
            while self.mode is Mode.NORMAL and not self._awaiting_advance:
                unit = self.cursor.current()
                if unit is None:
                    self._end()
                    break
                if isinstance(unit, Dialogue):
                    self._display(unit.text, unit.speaker)
                    continue
                budget -= 1
                if budget < 0:
                    raise NavigationError(f"Conversation '{self.cursor.conversation}' never yields",
                                          unit.line, self.script.name or None)
                self._execute(unit)
        except ScriptError as e:
            self._fail(e)
        finally:
            self._stepping = False
        return self.mode is not Mode.ENDED

    def _emit(self, kind: IntentKind, effect_id: Optional[int] = None, **payload) -> Intent:
        intent = Intent(kind, dict(payload), effect_id)
        self.renderer.apply(intent)
        return intent

    def _display(self, text: str, speaker: Optional[str] = None, wait: bool = True) -> None:
        scene = self.session.scene
        who = speaker if speaker is not None else scene.speaker
        scene.speech = text
        self.textbox.push(who, text, self.cursor.conversation)
        self.events.emit("text.show", who=who, text=text)
        if wait:
            self.timed_text.begin_line(text)
            self._awaiting_advance = True
            visible = self.timed_text.visible_text
        else:
            visible = text
        self._emit(IntentKind.SHOW_TEXT, speaker=who, text=text, visible=visible)

    def advance(self) -> bool:
        """Move past the displayed dialogue line and keep running."""
        if self.mode is not Mode.NORMAL or not self._awaiting_advance:
            return False
        self._awaiting_advance = False
        self.timed_text.end_line()
        self.cursor.advance()
        self.step()
        return True

    def request_advance(self) -> bool:
        """User input; typewriter/cinematic settings may swallow it."""
        if self.mode is not Mode.NORMAL or not self._awaiting_advance:
            return False
        if self.timed_text.on_input():
            return self.advance()
        self._emit_reveal()
        return False

    def tick(self, dt: float) -> None:
        """Drive timed text; called by the owning loop once per frame."""
        if self.mode is not Mode.NORMAL or not self._awaiting_advance:
            return
        fired = self.timed_text.tick(dt)
        self._emit_reveal()
        if fired:
            self.advance()

    def _emit_reveal(self) -> None:
        if self.timed_text.revealed_changed:
            self.timed_text.revealed_changed = False
            self._emit(IntentKind.REVEAL_TEXT, text=self.timed_text.visible_text,
                       complete=self.timed_text.typewriter.complete)

    def _execute(self, cmd: Command) -> None:
        layout = LAYOUTS[cmd.kind]
        count = len(cmd.args)
        # compiled fixed layouts carry their defaults, so the head is always full
        if not layout.accepts(count) or (not layout.repeat and count != len(layout.head)):
            raise ArityError(cmd.kind.value, layout.expected(), count, cmd.line, self.cursor.conversation)
        logger.debug("%s[%d] .%s %s", self.cursor.conversation, self.cursor.index, cmd.kind.value, list(cmd.args))
        self.events.emit("command", name=cmd.kind.value, args=list(cmd.args), line=cmd.line)
        if self._handlers[cmd.kind](cmd):
            self.cursor.advance()

    def _build_handlers(self) -> Dict[CommandKind, Callable[[Command], bool]]:
        return {
            K.ADD_SPRITE: self._cmd_add_sprite,
            K.REMOVE_SPRITE: self._cmd_remove_sprite,
            K.ALIGN_SPRITE: self._cmd_align_sprite,
            K.MOVE_SPRITE: self._cmd_move_sprite,
            K.SET_SPRITE_POSITION: self._cmd_set_sprite_position,
            K.FLIP_SPRITE: self._cmd_flip_sprite,
            K.SCALE_SPRITE: self._cmd_scale_sprite,
            K.SET_SPRITE_ALIAS: self._cmd_set_sprite_alias,
            K.SET_BACKGROUND: self._cmd_set_background,
            K.MOVE_BACKGROUND: self._cmd_move_background,
            K.SCALE_BACKGROUND: self._cmd_scale_background,
            K.FADE_IN: self._cmd_fade,
            K.FADE_OUT: self._cmd_fade,
            K.PLAY_SOUND: self._cmd_play_sound,
            K.PLAY_MUSIC: self._cmd_play_music,
            K.SET_SPEAKER: self._cmd_set_speaker,
            K.SHOW_SPEECH: self._cmd_show_speech,
            K.SET_SPEECHBOX: self._cmd_set_speechbox,
            K.SET_SPEECH_FONT: self._cmd_ui_override,
            K.SET_SPEECH_FONT_SIZE: self._cmd_ui_override,
            K.SET_SPEAKER_FONT: self._cmd_ui_override,
            K.SET_SPEAKER_FONT_SIZE: self._cmd_ui_override,
            K.SET_CINEMATIC_TEXT: self._cmd_set_cinematic_text,
            K.SET_TYPEWRITER_TEXT: self._cmd_set_typewriter_text,
            K.MODIFY_CHOICEBOX_OFFSET: self._cmd_modify_choicebox_offset,
            K.SET_CONVERSATION: self._cmd_set_conversation,
            K.SWITCH_SCRIPT: self._cmd_switch_script,
            K.SET_FLAG: self._cmd_set_flag,
            K.MODIFY_FLAG: self._cmd_modify_flag,
            K.INCREASE_FLAG_BY_FLAG: self._cmd_flag_by_flag,
            K.DECREASE_FLAG_BY_FLAG: self._cmd_flag_by_flag,
            K.ROLL_DICE: self._cmd_roll_dice,
            K.IS_FLAG: self._cmd_conditional,
            K.IS_FLAG_MORE_THAN: self._cmd_conditional,
            K.IS_FLAG_LESS_THAN: self._cmd_conditional,
            K.IS_FLAG_BETWEEN: self._cmd_conditional,
            K.IS_FLAG_MORE_THAN_FLAG: self._cmd_conditional,
            K.IS_FLAG_LESS_THAN_FLAG: self._cmd_conditional,
            K.IS_FLAG_EQUAL_TO_FLAG: self._cmd_conditional,
            K.JUMP_ON_FLAG: self._cmd_jump_on_flag,
            K.JUMP_ON_CHOICE: self._cmd_choice,
            K.MODIFY_FLAG_BY_CHOICE: self._cmd_choice,
            K.SHOW_CHOICE_AND_JUMP: self._cmd_choice,
            K.SHOW_CHOICE_AND_MODIFY: self._cmd_choice,
            K.ADD_TO_CHOICE_SET: self._cmd_add_to_choice_set,
            K.REMOVE_FROM_CHOICE_SET: self._cmd_remove_from_choice_set,
            K.WIPE_CHOICE_SET: self._cmd_wipe_choice_set,
            K.SHOW_CHOICE_SET: self._cmd_show_choice_set,
            K.SYSTEM_CALL: self._cmd_system_call,
        }

    # --- effects ---
    def _run_effect(self, kind: IntentKind, duration: float, apply: Callable[[], None], **payload) -> bool:
        """Apply a visual change; with a positive duration it blocks until the renderer reports back.

        The safe snapshot is taken before ``apply`` so a save made mid-effect
        replays the effect from its start.
        """
        blocking = duration > 0
        if blocking:
            self.session.capture_safe()
        apply()
        if not blocking:
            self._emit(kind, duration=0.0, **payload)
            if kind is IntentKind.FADE_BEGIN:
                self._emit(IntentKind.FADE_END, direction=payload.get("direction"))
            return True
        self._effect_seq += 1
        self._effect = Intent(kind, dict(payload, duration=duration), self._effect_seq)
        self._set_mode(Mode.EFFECT_RUNNING)
        self.renderer.apply(self._effect)
        return False

    def effect_finished(self, effect_id: Optional[int]) -> bool:
        """Rendering collaborator reports that the running effect is done."""
        effect = self._effect
        if self.mode is not Mode.EFFECT_RUNNING or effect is None or effect.effect_id != effect_id:
            logger.warning("stale effect_finished(%s) in mode %s", effect_id, self.mode.value)
            return False
        self._effect = None
        if effect.kind is IntentKind.FADE_BEGIN:
            self._emit(IntentKind.FADE_END, direction=effect.payload.get("direction"))
        self.session.release_safe()
        self._set_mode(Mode.NORMAL)
        self.cursor.advance()
        self.step()
        return True

    def _sprite(self, name: str, kind: CommandKind) -> Optional[SpriteState]:
        sprite = self.session.scene.sprites.get(name)
        if sprite is None:
            logger.warning(".%s: no sprite named %r on screen", kind.value, name)
        return sprite

    # --- visual / audio ---
    def _cmd_add_sprite(self, cmd: Command) -> bool:
        name, at_once = cmd.args
        scene = self.session.scene
        filename = scene.sprite_aliases.get(name) or name
        view = self.config["view"]
        sprite = scene.sprites.get(name)
        if sprite is None:
            sprite = SpriteState(filename=filename, x=view["width"] * 0.5, y=view["height"] * view["sprite_y"])
            scene.sprites[name] = sprite
        else:
            sprite.filename = filename
        self._emit(IntentKind.SHOW_SPRITE, name=name, filename=filename, x=sprite.x, y=sprite.y, at_once=at_once)
        return True

    def _cmd_remove_sprite(self, cmd: Command) -> bool:
        name, at_once = cmd.args
        if self.session.scene.sprites.pop(name, None) is None:
            logger.warning(".removesprite: no sprite named %r on screen", name)
            return True
        self._emit(IntentKind.REMOVE_SPRITE, name=name, at_once=at_once)
        return True

    def _cmd_align_sprite(self, cmd: Command) -> bool:
        name, alignment, duration = cmd.args
        sprite = self._sprite(name, cmd.kind)
        if sprite is None:
            return True
        frac = ALIGNMENTS.get(str(alignment).strip().lower())
        if frac is None:
            logger.warning(".alignsprite: unknown alignment %r, using center", alignment)
            frac = ALIGNMENTS["center"]
        x = self.config["view"]["width"] * frac

        def apply() -> None:
            sprite.x = x
        return self._run_effect(IntentKind.MOVE_SPRITE, duration, apply, name=name, x=x, y=sprite.y)

    def _cmd_move_sprite(self, cmd: Command) -> bool:
        name, dx, dy, duration = cmd.args
        sprite = self._sprite(name, cmd.kind)
        if sprite is None:
            return True
        x, y = sprite.x + dx, sprite.y + dy

        def apply() -> None:
            sprite.x, sprite.y = x, y
        return self._run_effect(IntentKind.MOVE_SPRITE, duration, apply, name=name, x=x, y=y, dx=dx, dy=dy)

    def _cmd_set_sprite_position(self, cmd: Command) -> bool:
        name, x, y = cmd.args
        sprite = self._sprite(name, cmd.kind)
        if sprite is None:
            return True
        sprite.x, sprite.y = x, y
        self._emit(IntentKind.PLACE_SPRITE, name=name, x=x, y=y)
        return True

    def _cmd_flip_sprite(self, cmd: Command) -> bool:
        name, duration, horizontal = cmd.args
        sprite = self._sprite(name, cmd.kind)
        if sprite is None:
            return True

        def apply() -> None:
            if horizontal:
                sprite.flipped_x = not sprite.flipped_x
            else:
                sprite.flipped_y = not sprite.flipped_y
        return self._run_effect(IntentKind.FLIP_SPRITE, duration, apply, name=name, horizontal=horizontal)

    def _cmd_scale_sprite(self, cmd: Command) -> bool:
        name, scale, duration = cmd.args
        sprite = self._sprite(name, cmd.kind)
        if sprite is None:
            return True

        def apply() -> None:
            sprite.scale = scale
        return self._run_effect(IntentKind.SCALE_SPRITE, duration, apply, name=name, scale=scale)

    def _cmd_set_sprite_alias(self, cmd: Command) -> bool:
        alias, filename = cmd.args
        aliases = self.session.scene.sprite_aliases
        if filename is None:
            aliases.pop(alias, None)
        else:
            aliases[alias] = filename
        return True

    def _cmd_set_background(self, cmd: Command) -> bool:
        (filename,) = cmd.args
        scene = self.session.scene
        scene.background = filename
        scene.background_x = scene.background_y = 0.0
        scene.background_scale = 1.0
        self._emit(IntentKind.SHOW_BACKGROUND, filename=filename)
        return True

    def _cmd_move_background(self, cmd: Command) -> bool:
        dx, dy, duration, parallax = cmd.args
        scene = self.session.scene

        def apply() -> None:
            scene.background_x += dx
            scene.background_y += dy
            for sprite in scene.sprites.values():
                sprite.x += dx * parallax
                sprite.y += dy * parallax
        return self._run_effect(IntentKind.MOVE_BACKGROUND, duration, apply, dx=dx, dy=dy, parallax=parallax)

    def _cmd_scale_background(self, cmd: Command) -> bool:
        scale, duration = cmd.args
        scene = self.session.scene

        def apply() -> None:
            scene.background_scale = scale
        return self._run_effect(IntentKind.SCALE_BACKGROUND, duration, apply, scale=scale)

    def _cmd_fade(self, cmd: Command) -> bool:
        (duration,) = cmd.args
        scene = self.session.scene
        fading_out = cmd.kind is K.FADE_OUT

        def apply() -> None:
            scene.faded_out = fading_out
        return self._run_effect(IntentKind.FADE_BEGIN, duration, apply, direction="out" if fading_out else "in")

    def _cmd_play_sound(self, cmd: Command) -> bool:
        (filename,) = cmd.args
        self._emit(IntentKind.PLAY_SOUND, filename=filename)
        return True

    def _cmd_play_music(self, cmd: Command) -> bool:
        filename, loop = cmd.args
        scene = self.session.scene
        scene.music = filename
        scene.music_loop = loop
        if filename is None:
            self._emit(IntentKind.STOP_MUSIC)
        else:
            self._emit(IntentKind.PLAY_MUSIC, filename=filename, loop=loop)
        return True

    # --- presentation ---
    def _cmd_set_speaker(self, cmd: Command) -> bool:
        (name,) = cmd.args
        self.session.scene.speaker = name
        return True

    def _cmd_show_speech(self, cmd: Command) -> bool:
        (visible,) = cmd.args
        self.session.scene.show_speech = visible
        self._emit(IntentKind.SPEECH_VISIBILITY, visible=visible)
        return True

    def _cmd_set_speechbox(self, cmd: Command) -> bool:
        filename, duration = cmd.args
        self.session.scene.speechbox = filename
        self._emit(IntentKind.SET_SPEECHBOX, filename=filename, duration=duration)
        return True

    _UI_FIELDS = {
        K.SET_SPEECH_FONT: "speech_font",
        K.SET_SPEECH_FONT_SIZE: "speech_font_size",
        K.SET_SPEAKER_FONT: "speaker_font",
        K.SET_SPEAKER_FONT_SIZE: "speaker_font_size",
    }

    def _cmd_ui_override(self, cmd: Command) -> bool:
        (value,) = cmd.args
        field_name = self._UI_FIELDS[cmd.kind]
        setattr(self.session.ui, field_name, value)
        self._emit(IntentKind.UI_OVERRIDE, **{field_name: value})
        return True

    def _cmd_set_cinematic_text(self, cmd: Command) -> bool:
        seconds, input_allowed = cmd.args
        ui = self.session.ui
        ui.cinematic_seconds = max(0.0, seconds)
        ui.cinematic_input_allowed = input_allowed
        if ui.cinematic_seconds > 0:
            ui.typewriter_cps = 0
        self.timed_text.configure_cinematic(ui.cinematic_seconds, input_allowed)
        return True

    def _cmd_set_typewriter_text(self, cmd: Command) -> bool:
        cps, can_skip = cmd.args
        ui = self.session.ui
        ui.typewriter_cps = max(0, cps)
        ui.typewriter_can_skip = can_skip
        if ui.typewriter_cps > 0:
            ui.cinematic_seconds = 0.0
        self.timed_text.configure_typewriter(ui.typewriter_cps, can_skip)
        return True

    def _cmd_modify_choicebox_offset(self, cmd: Command) -> bool:
        dx, dy = cmd.args
        ui = self.session.ui
        ui.choicebox_offset_x += dx
        ui.choicebox_offset_y += dy
        self._emit(IntentKind.UI_OVERRIDE, choicebox_offset_x=ui.choicebox_offset_x,
                   choicebox_offset_y=ui.choicebox_offset_y)
        return True

    # --- flow ---
    def _switch_conversation(self, name: str) -> None:
        self.cursor.switch_conversation(name)
        logger.debug("conversation -> %s", name)

    def _cmd_set_conversation(self, cmd: Command) -> bool:
        (name,) = cmd.args
        self._switch_conversation(name)
        return False

    def _cmd_switch_script(self, cmd: Command) -> bool:
        name, conversation = cmd.args
        if self.library is None:
            raise NavigationError(f"Cannot switch to script '{name}': no script library", cmd.line)
        script = self.library.get(name)
        self.cursor.rebind(script, CursorState(conversation=conversation or START_CONVERSATION))
        self.script = script
        self.session.script_name = script.name or name
        self.session.choice_sets.clear()
        logger.info("switched to script %s (%s)", self.session.script_name, self.cursor.conversation)
        return False

    # --- flags ---
    def _cmd_set_flag(self, cmd: Command) -> bool:
        flag, value = cmd.args
        self.flags.set(flag.name, value)
        return True

    def _cmd_modify_flag(self, cmd: Command) -> bool:
        flag, delta = cmd.args
        self.flags.modify(flag.name, delta)
        return True

    def _cmd_flag_by_flag(self, cmd: Command) -> bool:
        flag, other = cmd.args
        amount = self.flags.get(other.name)
        if cmd.kind is K.DECREASE_FLAG_BY_FLAG:
            amount = -amount
        self.flags.modify(flag.name, amount)
        return True

    def _cmd_roll_dice(self, cmd: Command) -> bool:
        sides, count, flag = cmd.args
        total = 0
        if sides >= 1 and count >= 1:
            total = sum(self.rng.randint(1, sides) for _ in range(count))
        self.flags.set(flag.name, total)
        return True

    def _evaluate(self, cmd: Command) -> bool:
        flag, *rest = cmd.args
        value = self.flags.get(flag.name)
        kind = cmd.kind
        if kind is K.IS_FLAG:
            return value == rest[0]
        if kind is K.IS_FLAG_MORE_THAN:
            return value > rest[0]
        if kind is K.IS_FLAG_LESS_THAN:
            return value < rest[0]
        if kind is K.IS_FLAG_BETWEEN:
            low, high = sorted(rest)
            return low < value < high
        other = self.flags.get(rest[0].name)
        if kind is K.IS_FLAG_MORE_THAN_FLAG:
            return value > other
        if kind is K.IS_FLAG_LESS_THAN_FLAG:
            return value < other
        return value == other

    def _cmd_conditional(self, cmd: Command) -> bool:
        # inline if: true runs the next unit, false skips exactly one unit
        ok = self._evaluate(cmd)
        self.cursor.advance()
        if not ok:
            self.cursor.skip()
        return False

    def _cmd_jump_on_flag(self, cmd: Command) -> bool:
        flag = cmd.args[0]
        value = self.flags.get(flag.name)
        for expected, conversation in cmd.groups(1, 2):
            if value == expected:
                self._switch_conversation(conversation)
                return False
        return True

    # --- choices ---
    def _cmd_choice(self, cmd: Command) -> bool:
        kind = cmd.kind
        line: Optional[str] = None
        start = 0
        if kind in (K.SHOW_CHOICE_AND_JUMP, K.SHOW_CHOICE_AND_MODIFY):
            line = cmd.args[0]
            start = 1
        if kind in (K.JUMP_ON_CHOICE, K.SHOW_CHOICE_AND_JUMP):
            options = [ChoiceOption(text, conversation=conv) for text, conv in cmd.groups(start, 2)]
        else:
            options = [ChoiceOption(text, flag=flag.name, delta=delta) for text, flag, delta in cmd.groups(start, 3)]
        self._present_choices(options, line)
        return False

    def _present_choices(self, options: List[ChoiceOption], line: Optional[str] = None) -> None:
        self.session.capture_safe()
        self._choice = options
        self._set_mode(Mode.AWAITING_CHOICE)
        if line is not None:
            self._display(line, wait=False)
        ui = self.session.ui
        texts = [o.text for o in options]
        self.events.emit("choice.show", options=texts)
        self._emit(IntentKind.SHOW_CHOICES, options=texts,
                   offset=(ui.choicebox_offset_x, ui.choicebox_offset_y))

    def choose(self, index: int) -> bool:
        """Input collaborator reports the selected choice (0-based)."""
        if self.mode is not Mode.AWAITING_CHOICE or self._choice is None:
            logger.warning("choose(%s) ignored in mode %s", index, self.mode.value)
            return False
        options = self._choice
        try:
            try:
                pick = int(index)
            except (TypeError, ValueError):
                raise ChoiceIndexError(index, len(options)) from None
            if not 0 <= pick < len(options):
                raise ChoiceIndexError(pick, len(options))
            option = options[pick]
            self._choice = None
            self.events.emit("choice.select", index=pick, text=option.text)
            self._emit(IntentKind.CLEAR_CHOICES)
            if option.conversation is not None:
                self._switch_conversation(option.conversation)
            else:
                self.flags.modify(option.flag, option.delta)
                self.cursor.advance()
            self.session.release_safe()
            self._set_mode(Mode.NORMAL)
        except ScriptError as e:
            self._fail(e)
            return False
        self.step()
        return True

    def _cmd_add_to_choice_set(self, cmd: Command) -> bool:
        name, text, conversation = cmd.args
        entries = self.session.choice_sets.setdefault(name, [])
        entries[:] = [e for e in entries if e[0] != text]
        entries.append((text, conversation))
        return True

    def _cmd_remove_from_choice_set(self, cmd: Command) -> bool:
        name, text = cmd.args
        entries = self.session.choice_sets.get(name)
        if entries is not None:
            entries[:] = [e for e in entries if e[0] != text]
        return True

    def _cmd_wipe_choice_set(self, cmd: Command) -> bool:
        (name,) = cmd.args
        self.session.choice_sets.pop(name, None)
        return True

    def _cmd_show_choice_set(self, cmd: Command) -> bool:
        (name,) = cmd.args
        entries = self.session.choice_sets.get(name)
        if not entries:
            logger.warning(".showchoiceset: choice set %r is empty", name)
            return True
        self._present_choices([ChoiceOption(text, conversation=conv) for text, conv in entries])
        return False

    # --- host calls ---
    def _cmd_system_call(self, cmd: Command) -> bool:
        self.system_call.send_call([str(a) if a is not None else None for a in cmd.args])
        return True

    # --- flags for host code ---
    def flag(self, name: str) -> int:
        return self.flags.get(name)

    def set_flag(self, name: str, value: int) -> None:
        self.flags.set(name, value)

    # --- persistence ---
    def snapshot_for_persist(self) -> SessionSnapshot:
        """Safe snapshot while an effect/choice is running, live state otherwise."""
        return self.session.snapshot_for_persist()

    def restore_snapshot(self, snapshot: SessionSnapshot) -> None:
        """Adopt ``snapshot`` and re-enter Loading; the saved unit runs again once resources are ready."""
        script = self.script
        if snapshot.script and snapshot.script != self.script.name:
            if self.library is None:
                raise NavigationError(f"Cannot restore script '{snapshot.script}': no script library")
            script = self.library.get(snapshot.script)
        # rebind first: a bad conversation leaves the running session untouched
        self.cursor.rebind(script, snapshot.cursor)
        self.script = script
        self.session.adopt(snapshot)
        self.session.script_name = script.name or snapshot.script
        self._effect = None
        self._choice = None
        self._awaiting_advance = False
        self.error = None
        self.timed_text.end_line()
        self._configure_timed_text()
        self._enter_loading()

    def _require_store(self) -> Optional[ISaveStore]:
        if self.save_store is None:
            logger.warning("no save store attached")
        return self.save_store

    def save_to_slot(self, slot: int) -> bool:
        store = self._require_store()
        if store is None:
            return False
        return bool(store.write_slot(int(slot), self.snapshot_for_persist().to_dict()))

    def load_from_slot(self, slot: int) -> bool:
        store = self._require_store()
        data = store.read_slot(int(slot)) if store is not None else None
        if not data:
            return False
        self.restore_snapshot(SessionSnapshot.from_dict(data))
        return True

    def quicksave(self) -> bool:
        store = self._require_store()
        if store is None:
            return False
        return bool(store.write_quick(self.snapshot_for_persist().to_dict()))

    def quickload(self) -> bool:
        store = self._require_store()
        data = store.read_quick() if store is not None else None
        if not data:
            return False
        self.restore_snapshot(SessionSnapshot.from_dict(data))
        return True

    def autosave(self) -> bool:
        return self.save_to_slot(AUTOSAVE_SLOT)

    # --- headless driver ---
    def run_headless(self, choices: Optional[Iterable[int]] = None, max_iterations: int = 100000) -> None:
        """Drive the session to the end without a UI.

        Effects complete immediately, dialogue advances at once, and choices
        are taken from ``choices`` in order (0 once exhausted).
        """
        picks = iter(choices or ())
        if self.mode is Mode.LOADING:
            self.resources_ready()
        for _ in range(max_iterations):
            if self.mode is Mode.ENDED:
                return
            if self.mode is Mode.EFFECT_RUNNING and self._effect is not None:
                self.effect_finished(self._effect.effect_id)
            elif self.mode is Mode.AWAITING_CHOICE:
                self.choose(next(picks, 0))
            elif self._awaiting_advance:
                self.advance()
            else:
                self.step()
        logger.warning("run_headless stopped after %d iterations", max_iterations)

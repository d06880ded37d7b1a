"""
Pygame host: a window renderer plus the loop that owns the engine.

The renderer only records intents while ``apply`` runs; completion is
reported back by :func:`run_pygame` on the next frame (``resources_ready``,
``effect_finished``), so the engine is never re-entered from inside a
dispatch.
"""
from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pygame
from pygame import Surface

from ..ui.textbox import Textbox
from .engine import Engine, Mode
from .intents import Intent, IntentKind
from .renderer import IRenderer
from .session import SceneRecord, SpriteState

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = ("", ".png", ".jpg", ".jpeg", ".bmp")
SOUND_SUFFIXES = ("", ".ogg", ".wav", ".mp3")

_ADVANCE_KEYS = (pygame.K_RETURN, pygame.K_SPACE, pygame.K_KP_ENTER)
_NUMBER_KEYS = {getattr(pygame, f"K_{n}"): n - 1 for n in range(1, 10)}


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _load_font(path: Optional[str], size: float) -> pygame.font.Font:
    size_px = max(6, int(round(size or 17)))
    if path:
        try:
            p = Path(path)
            if p.exists():
                return pygame.font.Font(str(p), size_px)
        except (OSError, pygame.error) as e:
            logger.warning("font %s unusable: %s", path, e)
    return pygame.font.Font(None, size_px)


class PygameRenderer(IRenderer):
    def __init__(self, size: Tuple[int, int] = (1024, 768), title: str = "dotvn",
                 asset_dir: Optional[Path | str] = None, frame_rate: int = 60,
                 strict_assets: bool = False) -> None:
        pygame.init()
        self.size = (int(size[0]), int(size[1]))
        self.screen = pygame.display.set_mode(self.size)
        pygame.display.set_caption(title)
        self.clock = pygame.time.Clock()
        self.frame_rate = max(1, int(frame_rate))
        self.asset_dir = Path(asset_dir) if asset_dir else None
        self.strict_assets = strict_assets
        self.scene = SceneRecord()
        self.visible_text = ""
        self.choices: List[str] = []
        self.choice_offset: Tuple[float, float] = (0.0, 0.0)
        self.error: Optional[str] = None
        self.pending_ready = False
        # assets that could not be found since the last poll
        self.missing: List[str] = []
        self._images: Dict[str, Surface] = {}
        self._speech_font = _load_font(None, 24)
        self._speaker_font = _load_font(None, 24)
        self._effect: Optional[Intent] = None
        self._effect_start = 0
        self._effect_from: Dict[str, float] = {}
        self._fade_alpha = 0.0
        self._choice_rects: List[pygame.Rect] = []

    # --- assets ---
    def _resolve(self, name: str, suffixes: Tuple[str, ...]) -> Optional[Path]:
        base = self.asset_dir or Path(".")
        for suffix in suffixes:
            p = base / f"{name}{suffix}"
            if p.is_file():
                return p
        return None

    def _placeholder(self, label: str, size: Tuple[int, int]) -> Surface:
        surf = pygame.Surface(size, pygame.SRCALPHA)
        surf.fill((80, 80, 120, 255))
        pygame.draw.rect(surf, (200, 200, 240, 255), surf.get_rect(), 4)
        txt = self._speaker_font.render(label, True, (255, 255, 255))
        surf.blit(txt, txt.get_rect(center=(size[0] // 2, 30)))
        return surf

    def _image(self, name: str, placeholder_size: Tuple[int, int]) -> Surface:
        surf = self._images.get(name)
        if surf is not None:
            return surf
        p = self._resolve(name, IMAGE_SUFFIXES)
        if p is not None:
            try:
                surf = pygame.image.load(str(p))
            except pygame.error as e:
                logger.warning("cannot load image %s: %s", p, e)
        if surf is None:
            if self.strict_assets:
                self.missing.append(name)
            surf = self._placeholder(name, placeholder_size)
        self._images[name] = surf
        return surf

    def _play(self, name: str, music: bool = False, loop: bool = True) -> None:
        p = self._resolve(name, SOUND_SUFFIXES)
        if p is None:
            if self.strict_assets:
                self.missing.append(name)
            logger.debug("sound %s not found", name)
            return
        try:
            if not pygame.mixer.get_init():
                pygame.mixer.init()
            if music:
                pygame.mixer.music.load(str(p))
                pygame.mixer.music.play(-1 if loop else 0)
            else:
                pygame.mixer.Sound(str(p)).play()
        except pygame.error as e:
            logger.warning("audio unavailable for %s: %s", p, e)

    # --- IRenderer ---
    def prepare(self, scene: SceneRecord) -> None:
        self.scene = copy.deepcopy(scene)
        self._effect = None
        self.choices = []
        self.visible_text = scene.speech or ""
        self._fade_alpha = 255.0 if scene.faded_out else 0.0
        if scene.background:
            self._image(scene.background, self.size)
        for sprite in scene.sprites.values():
            self._image(sprite.filename, (300, 540))
        if scene.music:
            self._play(scene.music, music=True, loop=scene.music_loop)
        self.pending_ready = True

    def apply(self, intent: Intent) -> None:
        k = intent.kind
        p = intent.payload
        scene = self.scene
        if intent.blocking:
            self._begin_effect(intent)
        if k is IntentKind.SHOW_BACKGROUND:
            scene.background = p.get("filename")
            scene.background_x = scene.background_y = 0.0
            scene.background_scale = 1.0
        elif k is IntentKind.SHOW_SPRITE:
            scene.sprites[p["name"]] = SpriteState(p["filename"], p["x"], p["y"])
            self._image(p["filename"], (300, 540))
        elif k is IntentKind.REMOVE_SPRITE:
            scene.sprites.pop(p["name"], None)
        elif k in (IntentKind.MOVE_SPRITE, IntentKind.PLACE_SPRITE):
            sprite = scene.sprites.get(p["name"])
            if sprite is not None:
                sprite.x, sprite.y = p["x"], p["y"]
        elif k is IntentKind.FLIP_SPRITE:
            sprite = scene.sprites.get(p["name"])
            if sprite is not None:
                if p.get("horizontal", True):
                    sprite.flipped_x = not sprite.flipped_x
                else:
                    sprite.flipped_y = not sprite.flipped_y
        elif k is IntentKind.SCALE_SPRITE:
            sprite = scene.sprites.get(p["name"])
            if sprite is not None:
                sprite.scale = p["scale"]
        elif k is IntentKind.MOVE_BACKGROUND:
            scene.background_x += p["dx"]
            scene.background_y += p["dy"]
            for sprite in scene.sprites.values():
                sprite.x += p["dx"] * p["parallax"]
                sprite.y += p["dy"] * p["parallax"]
        elif k is IntentKind.SCALE_BACKGROUND:
            scene.background_scale = p["scale"]
        elif k is IntentKind.FADE_BEGIN:
            scene.faded_out = p.get("direction") == "out"
            if not intent.blocking:
                self._fade_alpha = 255.0 if scene.faded_out else 0.0
        elif k is IntentKind.PLAY_SOUND:
            self._play(p["filename"])
        elif k is IntentKind.PLAY_MUSIC:
            self._play(p["filename"], music=True, loop=p.get("loop", True))
        elif k is IntentKind.STOP_MUSIC:
            if pygame.mixer.get_init():
                pygame.mixer.music.stop()
        elif k is IntentKind.SHOW_TEXT:
            scene.speaker = p.get("speaker")
            scene.speech = p.get("text")
            self.visible_text = p.get("visible", p.get("text") or "")
        elif k is IntentKind.REVEAL_TEXT:
            self.visible_text = p.get("text", "")
        elif k is IntentKind.SPEECH_VISIBILITY:
            scene.show_speech = bool(p.get("visible"))
        elif k is IntentKind.SET_SPEECHBOX:
            scene.speechbox = p.get("filename")
        elif k is IntentKind.UI_OVERRIDE:
            self._apply_ui(p)
        elif k is IntentKind.SHOW_CHOICES:
            self.choices = list(p.get("options") or [])
            self.choice_offset = tuple(p.get("offset") or (0.0, 0.0))  # type: ignore[assignment]
        elif k is IntentKind.CLEAR_CHOICES:
            self.choices = []

    def show_error(self, message: str) -> None:
        self.error = message

    def _apply_ui(self, p: dict) -> None:
        if "speech_font" in p or "speech_font_size" in p:
            self._speech_font = _load_font(p.get("speech_font"), p.get("speech_font_size") or 24)
        if "speaker_font" in p or "speaker_font_size" in p:
            self._speaker_font = _load_font(p.get("speaker_font"), p.get("speaker_font_size") or 24)

    # --- effects ---
    def _begin_effect(self, intent: Intent) -> None:
        self._effect = intent
        self._effect_start = pygame.time.get_ticks()
        sprite = self.scene.sprites.get(intent.payload.get("name", ""))
        self._effect_from = {}
        if sprite is not None:
            self._effect_from = {"x": sprite.x, "y": sprite.y, "scale": sprite.scale}

    def _effect_progress(self, now_ms: int) -> float:
        if self._effect is None:
            return 1.0
        duration_ms = max(1.0, float(self._effect.payload.get("duration", 0.0)) * 1000.0)
        return min(1.0, (now_ms - self._effect_start) / duration_ms)

    def poll_effect(self, now_ms: int) -> Optional[int]:
        """Return the id of the running effect once its duration has elapsed."""
        if self._effect is None or self._effect_progress(now_ms) < 1.0:
            return None
        effect_id = self._effect.effect_id
        if self._effect.kind is IntentKind.FADE_BEGIN:
            self._fade_alpha = 255.0 if self.scene.faded_out else 0.0
        self._effect = None
        return effect_id

    # --- drawing ---
    def _sprite_pos(self, name: str, sprite: SpriteState, t: float) -> Tuple[float, float]:
        eff = self._effect
        if eff is not None and eff.kind is IntentKind.MOVE_SPRITE and eff.payload.get("name") == name and self._effect_from:
            return _lerp(self._effect_from["x"], sprite.x, t), _lerp(self._effect_from["y"], sprite.y, t)
        return sprite.x, sprite.y

    def draw(self, textbox: Optional[Textbox] = None) -> None:
        now = pygame.time.get_ticks()
        t = self._effect_progress(now)
        scene = self.scene
        self.screen.fill((0, 0, 0))
        if scene.background:
            bg = self._image(scene.background, self.size)
            if scene.background_scale != 1.0:
                w, h = bg.get_size()
                bg = pygame.transform.smoothscale(bg, (max(1, int(w * scene.background_scale)),
                                                       max(1, int(h * scene.background_scale))))
            self.screen.blit(bg, (int(-scene.background_x), int(-scene.background_y)))
        for name, sprite in scene.sprites.items():
            surf = self._image(sprite.filename, (300, 540))
            if sprite.flipped_x or sprite.flipped_y:
                surf = pygame.transform.flip(surf, sprite.flipped_x, sprite.flipped_y)
            if sprite.scale != 1.0:
                w, h = surf.get_size()
                surf = pygame.transform.smoothscale(surf, (max(1, int(w * sprite.scale)), max(1, int(h * sprite.scale))))
            x, y = self._sprite_pos(name, sprite, t)
            self.screen.blit(surf, surf.get_rect(center=(int(x), int(y))))
        if textbox is not None and textbox.view_idx != -1 and textbox.current() is not None:
            # backlog view replaces the live line
            past = textbox.current()
            self._draw_speech(past.name, past.text)
        elif scene.show_speech and (self.visible_text or scene.speaker):
            self._draw_speech(scene.speaker, self.visible_text)
        if self.choices:
            self._draw_choices()
        alpha = self._fade_alpha
        if self._effect is not None and self._effect.kind is IntentKind.FADE_BEGIN:
            alpha = _lerp(0.0, 255.0, t) if scene.faded_out else _lerp(255.0, 0.0, t)
        if alpha > 0:
            veil = pygame.Surface(self.size, pygame.SRCALPHA)
            veil.fill((0, 0, 0, int(alpha)))
            self.screen.blit(veil, (0, 0))
        if self.error:
            txt = self._speaker_font.render(self.error, True, (255, 120, 120))
            self.screen.blit(txt, (16, 16))
        pygame.display.flip()

    def _draw_speech(self, speaker: Optional[str], text: str) -> None:
        w, h = self.size
        panel = pygame.Rect(24, h - 180, w - 48, 156)
        box = pygame.Surface(panel.size, pygame.SRCALPHA)
        box.fill((0, 0, 0, 170))
        self.screen.blit(box, panel.topleft)
        y = panel.top + 12
        if speaker:
            name = self._speaker_font.render(speaker, True, (255, 220, 140))
            self.screen.blit(name, (panel.left + 16, y))
            y += name.get_height() + 6
        for line in self._wrap(text, panel.width - 32):
            surf = self._speech_font.render(line, True, (255, 255, 255))
            self.screen.blit(surf, (panel.left + 16, y))
            y += surf.get_height() + 2

    def _wrap(self, text: str, max_width: int) -> List[str]:
        lines: List[str] = []
        for para in (text or "").split("\n"):
            cur = ""
            for word in para.split(" "):
                probe = f"{cur} {word}" if cur else word
                if self._speech_font.size(probe)[0] <= max_width or not cur:
                    cur = probe
                else:
                    lines.append(cur)
                    cur = word
            lines.append(cur)
        return lines

    def _draw_choices(self) -> None:
        w, h = self.size
        ox, oy = self.choice_offset
        self._choice_rects = []
        top = h // 2 - len(self.choices) * 28 + int(oy)
        for i, text in enumerate(self.choices):
            label = self._speech_font.render(f"{i + 1}. {text}", True, (255, 255, 255))
            rect = pygame.Rect(0, 0, max(320, label.get_width() + 40), label.get_height() + 16)
            rect.center = (w // 2 + int(ox), top + i * (rect.height + 12))
            pygame.draw.rect(self.screen, (40, 40, 70), rect)
            pygame.draw.rect(self.screen, (200, 200, 240), rect, 2)
            self.screen.blit(label, label.get_rect(center=rect.center))
            self._choice_rects.append(rect)

    def choice_at(self, pos: Tuple[int, int]) -> Optional[int]:
        for i, rect in enumerate(self._choice_rects):
            if rect.collidepoint(pos):
                return i
        return None

    def close(self) -> None:
        pygame.quit()


def run_pygame(engine: Engine, renderer: PygameRenderer, max_frames: Optional[int] = None) -> None:
    """Own the engine: pump input, report completions, tick timed text, draw.

    Keys: Enter/Space advance, 1-9 pick a choice, F5/F9 quick save/load,
    Up/Down scroll the backlog, Esc quits.
    """
    frames = 0
    while engine.mode is not Mode.ENDED:
        dt = renderer.clock.tick(renderer.frame_rate) / 1000.0
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return
            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    return
                if event.key in _ADVANCE_KEYS:
                    engine.request_advance()
                elif event.key in _NUMBER_KEYS and engine.mode is Mode.AWAITING_CHOICE:
                    idx = _NUMBER_KEYS[event.key]
                    if idx < len(renderer.choices):
                        engine.choose(idx)
                elif event.key == pygame.K_F5:
                    engine.quicksave()
                elif event.key == pygame.K_F9:
                    engine.quickload()
                elif event.key == pygame.K_UP:
                    engine.textbox.scroll_up()
                elif event.key == pygame.K_DOWN:
                    engine.textbox.scroll_down()
            if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                if engine.mode is Mode.AWAITING_CHOICE:
                    idx = renderer.choice_at(event.pos)
                    if idx is not None:
                        engine.choose(idx)
                else:
                    engine.request_advance()
        if renderer.missing:
            missing, renderer.missing = renderer.missing, []
            engine.report_resource_error(f"Missing asset: {', '.join(missing)}")
            break
        if renderer.pending_ready and engine.mode is Mode.LOADING:
            renderer.pending_ready = False
            engine.resources_ready()
        done = renderer.poll_effect(pygame.time.get_ticks())
        if done is not None:
            engine.effect_finished(done)
        engine.tick(dt)
        renderer.draw(engine.textbox)
        frames += 1
        if max_frames is not None and frames >= max_frames:
            return

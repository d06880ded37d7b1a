from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


DEFAULTS = {
    "view": {
        "width": 1024,
        "height": 768,
        "frame_rate": 60,
        "sprite_y": 0.5,
    },
    "text": {
        "cinematic_seconds": 0.0,
        "cinematic_input_allowed": False,
        "typewriter_cps": 0,
        "typewriter_can_skip": True,
    },
    "fonts": {
        "speech_font": None,
        "speech_font_size": 17.0,
        "speaker_font": None,
        "speaker_font_size": 17.0,
    },
}


def default_config() -> dict:
    return {section: dict(values) for section, values in DEFAULTS.items()}


def merge_config(data: Optional[dict]) -> dict:
    # merge defaults per section (shallow); unknown sections are dropped
    out = default_config()
    for section in out:
        out[section].update(dict((data or {}).get(section) or {}))
    return out


def load_config(path: Optional[Path | str] = None) -> dict:
    if path is None:
        return default_config()
    p = Path(path)
    try:
        if p.exists():
            return merge_config(json.loads(p.read_text(encoding="utf-8")))
    except (OSError, ValueError) as e:
        logger.warning("ignoring unreadable config %s: %s", p, e)
    return default_config()


def save_config(cfg: dict, path: Path | str) -> bool:
    p = Path(path)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        # keep only known keys
        p.write_text(json.dumps(merge_config(cfg), ensure_ascii=False, indent=2), encoding="utf-8")
        return True
    except OSError as e:
        logger.warning("cannot write config %s: %s", p, e)
        return False

from __future__ import annotations

import copy
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

AUTOSAVE_SLOT = 0


def stamp(payload: dict) -> dict:
    """Return a copy of ``payload`` with a save timestamp."""
    out = dict(payload)
    out.setdefault("ts", datetime.now().isoformat(timespec="seconds"))
    return out


class ISaveStore(ABC):
    """Abstract save store for session snapshot payloads.

    Implementations store JSON-serializable dict payloads and retrieve them intact.
    Slot 0 is the autosave slot.
    """

    @abstractmethod
    def write_quick(self, payload: dict) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def read_quick(self) -> Optional[dict]:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def write_slot(self, slot: int, payload: dict) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def read_slot(self, slot: int) -> Optional[dict]:  # pragma: no cover - interface
        raise NotImplementedError

    def list_slots(self) -> list[int]:  # pragma: no cover - interface
        return []

    def delete_slot(self, slot: int) -> bool:  # pragma: no cover - interface
        return False


class MemorySaveStore(ISaveStore):
    """In-process store; payloads are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._quick: Optional[dict] = None
        self._slots: Dict[int, dict] = {}

    def write_quick(self, payload: dict) -> bool:
        self._quick = copy.deepcopy(stamp(payload))
        return True

    def read_quick(self) -> Optional[dict]:
        return copy.deepcopy(self._quick)

    def write_slot(self, slot: int, payload: dict) -> bool:
        self._slots[int(slot)] = copy.deepcopy(stamp(payload))
        return True

    def read_slot(self, slot: int) -> Optional[dict]:
        data = self._slots.get(int(slot))
        return copy.deepcopy(data) if data is not None else None

    def list_slots(self) -> list[int]:
        return sorted(self._slots)

    def delete_slot(self, slot: int) -> bool:
        return self._slots.pop(int(slot), None) is not None


class FileSaveStore(ISaveStore):
    """Filesystem save store.

    Files:
    - quick.json
    - slot_XX.json
    """

    def __init__(self, base: Union[Path, str, Callable[[], Path]]) -> None:
        self._get_base = base if callable(base) else (lambda: Path(base))

    def _ensure_dir(self) -> Path:
        base = Path(self._get_base())
        base.mkdir(parents=True, exist_ok=True)
        return base

    def _slot_path(self, slot: int) -> Path:
        return self._ensure_dir() / f"slot_{int(slot):02d}.json"

    def _quick_path(self) -> Path:
        return self._ensure_dir() / "quick.json"

    def _write(self, p: Path, payload: dict) -> bool:
        try:
            p.write_text(json.dumps(stamp(payload), ensure_ascii=False, indent=2), encoding="utf-8")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error("save to %s failed: %s", p, e)
            return False

    def _read(self, p: Path) -> Optional[dict]:
        if not p.exists():
            return None
        try:
            return json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("cannot read save %s: %s", p, e)
            return None

    def write_quick(self, payload: dict) -> bool:
        return self._write(self._quick_path(), payload)

    def read_quick(self) -> Optional[dict]:
        return self._read(self._quick_path())

    def write_slot(self, slot: int, payload: dict) -> bool:
        return self._write(self._slot_path(slot), payload)

    def read_slot(self, slot: int) -> Optional[dict]:
        return self._read(self._slot_path(slot))

    def list_slots(self) -> list[int]:
        slots: list[int] = []
        for p in self._ensure_dir().glob("slot_*.json"):
            try:
                slots.append(int(p.stem.split("_")[1]))
            except (IndexError, ValueError):
                continue
        return sorted(slots)

    def delete_slot(self, slot: int) -> bool:
        p = self._slot_path(slot)
        if not p.exists():
            return False
        try:
            p.unlink()
            return True
        except OSError as e:
            logger.error("cannot delete %s: %s", p, e)
            return False

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ...script.errors import NavigationError
from ...script.model import Script
from ...script.parser import compile_document, load_script

logger = logging.getLogger(__name__)

SCRIPT_SUFFIXES = (".json", ".plist")


class IScriptLibrary(ABC):
    """Resolves a script name (as used by ``.switchscript``) to a compiled Script."""

    @abstractmethod
    def get(self, name: str) -> Script:  # pragma: no cover - interface
        raise NotImplementedError


class DictScriptLibrary(IScriptLibrary):
    """In-memory documents keyed by script name; compiled lazily."""

    def __init__(self, documents: Optional[Mapping[str, Any]] = None) -> None:
        self._documents: Dict[str, Any] = dict(documents or {})
        self._cache: Dict[str, Script] = {}

    def add(self, name: str, document: Any) -> None:
        self._documents[name] = document
        self._cache.pop(name, None)

    def get(self, name: str) -> Script:
        if name not in self._cache:
            if name not in self._documents:
                raise NavigationError(f"Unknown script: {name}")
            self._cache[name] = compile_document(self._documents[name], name=name)
        return self._cache[name]


class ScriptLibrary(IScriptLibrary):
    """Scripts stored as ``<base>/<name>.json`` or ``<base>/<name>.plist``."""

    def __init__(self, base: Path | str) -> None:
        self.base = Path(base)
        self._cache: Dict[str, Script] = {}

    def path_for(self, name: str) -> Optional[Path]:
        for suffix in SCRIPT_SUFFIXES:
            p = self.base / f"{name}{suffix}"
            if p.exists():
                return p
        return None

    def get(self, name: str) -> Script:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        p = self.path_for(name)
        if p is None:
            raise NavigationError(f"Unknown script: {name}", context=str(self.base))
        logger.debug("loading script %s from %s", name, p)
        script = load_script(p)
        self._cache[name] = script
        return script

"""Host-call collaborator for ``.systemcall`` commands.

The engine forwards the raw argument list and ignores any return value.
Games extend :class:`DefaultSystemCall` (or implement :class:`ISystemCall`)
for their own calls: mini-games, achievements, analytics.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Sequence

logger = logging.getLogger(__name__)


class ISystemCall(ABC):
    @abstractmethod
    def send_call(self, args: Sequence[str]) -> object:  # pragma: no cover - interface
        raise NotImplementedError


class DefaultSystemCall(ISystemCall):
    """Understands ``autosave`` and ``log``; other calls are logged and ignored."""

    def __init__(self, autosave: Optional[Callable[[], bool]] = None) -> None:
        self._autosave = autosave
        self._handlers: Dict[str, Callable[[Sequence[str]], object]] = {
            "autosave": lambda _args: self.autosave(),
            "log": self._log,
        }

    def register(self, name: str, fn: Callable[[Sequence[str]], object]) -> None:
        self._handlers[name.lower()] = fn

    def send_call(self, args: Sequence[str]) -> object:
        if not args:
            return None
        name, rest = str(args[0]).strip().lower(), list(args[1:])
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("unhandled system call: %s %s", name, rest)
            return None
        return handler(rest)

    def autosave(self) -> bool:
        if self._autosave is None:
            logger.warning("autosave requested but no save store is attached")
            return False
        ok = bool(self._autosave())
        if not ok:
            logger.warning("autosave failed")
        return ok

    def _log(self, args: Sequence[str]) -> None:
        logger.info("script: %s", " ".join(str(a) for a in args))

"""
String-keyed pub/sub for engine notifications.

Names emitted by the engine: ``engine.load``, ``engine.mode``, ``text.show``,
``command``, ``choice.show``, ``choice.select``, ``engine.error``,
``engine.end``.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class EventBus:
    """
    Tiny pub/sub between the engine and its host.

    - subscribe(name, fn): register a callback, returns an unsubscribe function
    - once(name, fn): callback removed after its first delivery
    - emit(name, **data): fire event with keyword payload
    """

    def __init__(self) -> None:
        self._subs: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._emit_count: Dict[str, int] = defaultdict(int)

    def subscribe(self, name: str, fn: Listener) -> Callable[[], None]:
        if fn not in self._subs[name]:
            self._subs[name].append(fn)

        def unsubscribe() -> None:
            self.unsubscribe(name, fn)
        return unsubscribe

    def once(self, name: str, fn: Listener) -> Callable[[], None]:
        def wrapper(data: Dict[str, Any]) -> None:
            self.unsubscribe(name, wrapper)
            fn(data)
        return self.subscribe(name, wrapper)

    def unsubscribe(self, name: str, fn: Listener) -> None:
        try:
            self._subs[name].remove(fn)
        except ValueError:
            pass

    def emit(self, name: str, /, **data: Any) -> None:
        self._emit_count[name] += 1
        for fn in list(self._subs.get(name, [])):
            try:
                fn(dict(data))
            except Exception:
                # a broken listener must not stop the interpreter
                logger.exception("listener for %r failed", name)

    def emit_count(self, name: str) -> int:
        return self._emit_count.get(name, 0)

    def listener_count(self, name: str) -> int:
        return len(self._subs.get(name, []))

    def clear(self) -> None:
        self._subs.clear()
        self._emit_count.clear()

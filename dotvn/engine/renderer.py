from __future__ import annotations

import copy
from typing import List, Optional

from .intents import Intent, IntentKind
from .session import SceneRecord


class IRenderer:
    """Rendering/audio collaborator.

    The engine never holds a drawable object; it only sends intents. Completion
    flows back through ``Engine.resources_ready()`` and
    ``Engine.effect_finished(effect_id)``.
    """

    def prepare(self, scene: SceneRecord) -> None:
        """Load whatever ``scene`` needs (entering Loading); rebuild the screen from it."""
        raise NotImplementedError

    def apply(self, intent: Intent) -> None:
        raise NotImplementedError

    # Optional UI error banner (GUI renderers may override)
    def show_error(self, message: str) -> None:
        print(f"[ERROR] {message}")  # noqa: T201


class DummyRenderer(IRenderer):
    """Headless renderer that records intents and optionally prints them; useful for tests and CLI."""

    def __init__(self, echo: bool = False) -> None:
        self.echo = echo
        self.intents: List[Intent] = []
        self.prepared: Optional[SceneRecord] = None

    def prepare(self, scene: SceneRecord) -> None:
        self.prepared = copy.deepcopy(scene)
        if self.echo and scene.background:
            print(f"> BG {scene.background}")  # noqa: T201

    def apply(self, intent: Intent) -> None:
        self.intents.append(intent)
        if not self.echo:
            return
        k = intent.kind
        p = intent.payload
        if k is IntentKind.SHOW_TEXT:
            who = p.get("speaker")
            print(f"{who}: {p.get('text')}" if who else str(p.get("text")))  # noqa: T201
        elif k is IntentKind.SHOW_CHOICES:
            print("Choose:")  # noqa: T201
            for idx, txt in enumerate(p.get("options") or [], 1):
                print(f"  {idx}. {txt}")  # noqa: T201
        elif k is IntentKind.REVEAL_TEXT:
            return
        else:
            args = " ".join(f"{key}={val}" for key, val in p.items())
            print(f"> {k.value} {args}".rstrip())  # noqa: T201

    def kinds(self) -> List[IntentKind]:
        return [i.kind for i in self.intents]

    def clear(self) -> None:
        self.intents.clear()

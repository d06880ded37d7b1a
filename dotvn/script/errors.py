from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ScriptError(Exception):
    message: str
    line: int | None = None
    context: str | None = None

    def __str__(self) -> str:  # pragma: no cover - formatting
        loc = f" (line {self.line})" if self.line else ""
        ctx = f"\n  >> {self.context}" if self.context else ""
        return f"{self.message}{loc}{ctx}"


class LoadError(ScriptError):
    """The document cannot become an executable script."""


class UnknownCommand(LoadError):
    def __init__(self, name: str, line: int | None = None, context: str | None = None) -> None:
        super().__init__(f"Unknown command: {name}", line, context)
        self.name = name


class ArityError(LoadError):
    def __init__(self, kind: str, expected: str, got: int,
                 line: int | None = None, context: str | None = None) -> None:
        super().__init__(f"{kind} expects {expected} parameter(s), got {got}", line, context)
        self.kind = kind
        self.expected = expected
        self.got = got


class ParameterError(LoadError):
    """A parameter literal does not convert to its declared type."""


class NavigationError(ScriptError):
    """Jump or switch to a conversation (or script) that does not exist."""


class ChoiceIndexError(NavigationError):
    def __init__(self, index: int | str, count: int) -> None:
        super().__init__(f"Choice index {index} out of range (0..{count - 1})")
        self.index = index
        self.count = count


class ResourceError(ScriptError):
    """A collaborator reported a missing asset."""

from __future__ import annotations

from typing import Dict, Iterator, Mapping, Optional


class Flags:
    """Named integer flags. Reading an absent flag yields 0."""

    def __init__(self, initial: Optional[Mapping[str, int]] = None) -> None:
        self._values: Dict[str, int] = {}
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, name: str) -> int:
        return self._values.get(str(name), 0)

    def __getitem__(self, name: str) -> int:
        return self.get(name)

    def set(self, name: str, value: int) -> None:
        self._values[str(name)] = int(value)

    def modify(self, name: str, delta: int) -> int:
        """Add ``delta`` (negative subtracts); returns the new value."""
        value = self.get(name) + int(delta)
        self._values[str(name)] = value
        return value

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def as_dict(self) -> Dict[str, int]:
        return dict(self._values)

    def replace(self, values: Mapping[str, int]) -> None:
        self._values = {str(k): int(v) for k, v in values.items()}

    def __repr__(self) -> str:
        return f"Flags({self._values!r})"

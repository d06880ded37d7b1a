from __future__ import annotations

import json
import logging
import plistlib
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .commands import COMMAND_SENTINEL, SEPARATOR, bind_args, lookup_kind
from .errors import LoadError, UnknownCommand
from .model import START_CONVERSATION, Command, Dialogue, Script, Unit

logger = logging.getLogger(__name__)


def parse_line(raw: str, line: int = 0, conversation: str | None = None) -> Unit:
    """Classify one raw script line as a Command (sentinel-prefixed) or Dialogue."""
    if not raw.startswith(COMMAND_SENTINEL):
        return Dialogue(text=raw, line=line)
    keyword, *raw_args = raw[len(COMMAND_SENTINEL):].split(SEPARATOR)
    kind = lookup_kind(keyword)
    if kind is None:
        raise UnknownCommand(keyword, line, conversation)
    return Command(kind, bind_args(kind, raw_args, line, conversation), line)


def _parse_entry(entry: Any, line: int, conversation: str) -> Unit | None:
    # JSON documents may give a line as {"speaker": ..., "text": ...}
    if isinstance(entry, Mapping):
        text = entry.get("text")
        if not isinstance(text, str):
            raise LoadError("Dialogue mapping needs a string 'text'", line, conversation)
        speaker = entry.get("speaker")
        return Dialogue(text=text, speaker=str(speaker) if speaker is not None else None, line=line)
    if not isinstance(entry, str):
        raise LoadError(f"Line must be a string, got {type(entry).__name__}", line, conversation)
    if not entry.strip():
        return None
    return parse_line(entry, line, conversation)


def compile_document(document: Any, name: str = "") -> Script:
    if not isinstance(document, Mapping):
        raise LoadError("Script document root must be a mapping of conversations", context=name or None)
    conversations: Dict[str, List[Unit]] = {}
    for conv_name, lines in document.items():
        if not isinstance(conv_name, str):
            raise LoadError(f"Conversation name must be a string: {conv_name!r}", context=name or None)
        if isinstance(lines, (str, bytes)) or not isinstance(lines, (list, tuple)):
            raise LoadError(f"Conversation '{conv_name}' must be a list of lines", context=name or None)
        units: List[Unit] = []
        for idx, entry in enumerate(lines, 1):
            unit = _parse_entry(entry, idx, conv_name)
            if unit is not None:
                units.append(unit)
        conversations[conv_name] = units
    if START_CONVERSATION not in conversations:
        raise LoadError(f"Script has no '{START_CONVERSATION}' conversation", context=name or None)
    logger.debug("compiled script %r: %d conversation(s)", name, len(conversations))
    return Script(conversations, name=name)


def load_document(path: Path | str) -> Any:
    p = Path(path)
    suffix = p.suffix.lower()
    try:
        if suffix == ".json":
            return json.loads(p.read_text(encoding="utf-8"))
        if suffix == ".plist":
            with p.open("rb") as fh:
                return plistlib.load(fh)
    except (OSError, ValueError, plistlib.InvalidFileException) as e:
        raise LoadError(f"Cannot read script document: {e}", context=str(p)) from e
    raise LoadError(f"Unsupported script format: {p.suffix or '(none)'}", context=str(p))


def load_script(path: Path | str) -> Script:
    p = Path(path)
    return compile_document(load_document(p), name=p.stem)

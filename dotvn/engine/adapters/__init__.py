from __future__ import annotations

"""Adapter interfaces and default implementations for pluggable engine backends.

Provides:
- ISaveStore: persistence of session snapshots (file-backed and in-memory)
- IScriptLibrary: resolving script names for ``.switchscript`` and save restore
"""

from .storage import AUTOSAVE_SLOT, ISaveStore, FileSaveStore, MemorySaveStore  # noqa: F401
from .scripts import IScriptLibrary, DictScriptLibrary, ScriptLibrary  # noqa: F401

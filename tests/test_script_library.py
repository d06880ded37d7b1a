from __future__ import annotations

import json
import plistlib
from pathlib import Path

import pytest

from dotvn.engine.adapters.scripts import DictScriptLibrary, ScriptLibrary
from dotvn.engine.engine import Engine, Mode
from dotvn.engine.intents import IntentKind
from dotvn.engine.renderer import DummyRenderer
from dotvn.script.errors import LoadError, NavigationError
from dotvn.script.parser import compile_document


MAIN = {"start": [".setflag:gold:3", "Chapter one ends.", ".switchscript:chapter2:alt"]}
CHAPTER2 = {"start": ["Chapter two."], "alt": ["The other road.", ".modifyflag:gold:1"]}


def shown(renderer):
    return [i.payload["text"] for i in renderer.intents if i.kind is IntentKind.SHOW_TEXT]


def test_switchscript_keeps_flags():
    library = DictScriptLibrary({"chapter2": CHAPTER2})
    renderer = DummyRenderer()
    engine = Engine(compile_document(MAIN, name="main"), renderer, library=library)
    engine.run_headless()
    assert shown(renderer) == ["Chapter one ends.", "The other road."]
    assert engine.script.name == "chapter2"
    assert engine.session.script_name == "chapter2"
    assert engine.flag("gold") == 4
    assert engine.error is None


def test_switchscript_defaults_to_start():
    library = DictScriptLibrary({"chapter2": CHAPTER2})
    renderer = DummyRenderer()
    engine = Engine(compile_document({"start": [".switchscript:chapter2"]}, name="main"), renderer, library=library)
    engine.resources_ready()
    assert engine.cursor.conversation == "start"
    assert shown(renderer) == ["Chapter two."]


def test_switchscript_to_an_unknown_script_ends_the_session():
    engine = Engine(compile_document(MAIN, name="main"), library=DictScriptLibrary())
    engine.run_headless()
    assert engine.mode is Mode.ENDED
    assert isinstance(engine.error, NavigationError)


def test_switchscript_without_a_library():
    engine = Engine(compile_document(MAIN, name="main"))
    engine.run_headless()
    assert isinstance(engine.error, NavigationError)


def test_switchscript_to_a_broken_script():
    library = DictScriptLibrary({"chapter2": {"intro": ["no start here"]}})
    engine = Engine(compile_document(MAIN, name="main"), library=library)
    engine.run_headless()
    assert isinstance(engine.error, LoadError)


def test_restore_loads_the_saved_script():
    library = DictScriptLibrary({"chapter2": CHAPTER2})
    engine = Engine(compile_document(MAIN, name="main"), library=library)
    engine.resources_ready()
    engine.advance()
    snap = engine.snapshot_for_persist()
    assert snap.script == "chapter2"

    renderer = DummyRenderer()
    other = Engine(compile_document(MAIN, name="main"), renderer, library=library)
    other.restore_snapshot(snap)
    other.resources_ready()
    assert other.script.name == "chapter2"
    assert shown(renderer) == ["The other road."]


def test_dict_library_compiles_lazily_and_caches():
    library = DictScriptLibrary()
    library.add("a", {"start": ["one"]})
    first = library.get("a")
    assert library.get("a") is first
    library.add("a", {"start": ["two"]})
    assert library.get("a").lookup("start")[0].text == "two"
    with pytest.raises(NavigationError):
        library.get("b")


def test_file_library(tmp_path: Path):
    (tmp_path / "intro.json").write_text(json.dumps({"start": ["hi"]}), encoding="utf-8")
    with (tmp_path / "outro.plist").open("wb") as fh:
        plistlib.dump({"start": ["bye"]}, fh)
    library = ScriptLibrary(tmp_path)
    assert library.path_for("intro") == tmp_path / "intro.json"
    assert library.path_for("missing") is None
    intro = library.get("intro")
    assert intro.name == "intro"
    assert library.get("intro") is intro
    assert library.get("outro").lookup("start")[0].text == "bye"
    with pytest.raises(NavigationError):
        library.get("missing")

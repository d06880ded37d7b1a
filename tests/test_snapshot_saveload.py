from __future__ import annotations

import json
from pathlib import Path

import pytest

from dotvn.engine.adapters.storage import AUTOSAVE_SLOT, FileSaveStore, MemorySaveStore
from dotvn.engine.engine import Engine, Mode
from dotvn.engine.intents import IntentKind
from dotvn.engine.renderer import DummyRenderer
from dotvn.engine.session import SessionSnapshot
from dotvn.script.errors import NavigationError
from dotvn.script.parser import compile_document


DOC = {
    "start": [
        ".setbackground:street",
        ".playmusic:walk.ogg",
        ".setspeaker:Mia",
        ".addsprite:mia",
        "It's late.",
        ".setflag:trust:1",
        ".movesprite:mia:-100:0:0.5",
        "Let's go home.",
        ".modifyflagbychoice:Agree:trust:2:Refuse:trust:-1",
        ".isflagmorethan:trust:2",
        ".setconversation:good",
        "She sighs.",
    ],
    "good": [".fadeout:1.0", ".setbackground:home", ".fadein:1.0", "Home at last."],
}


def pairs(intents):
    return [(i.kind, i.payload) for i in intents]


def last_text_index(intents):
    return max(i for i, it in enumerate(intents) if it.kind is IntentKind.SHOW_TEXT)


def fresh(**kw):
    renderer = DummyRenderer()
    return Engine(compile_document(DOC, name="walk"), renderer, **kw), renderer


def drive(engine, until):
    """Play like run_headless (first choice, instant effects) until ``until(engine)`` holds."""
    engine.resources_ready()
    while not until(engine):
        assert engine.mode is not Mode.ENDED
        if engine.mode is Mode.EFFECT_RUNNING:
            engine.effect_finished(engine.current_effect.effect_id)
        elif engine.mode is Mode.AWAITING_CHOICE:
            engine.choose(0)
        else:
            engine.advance()


@pytest.mark.parametrize("line", ["It's late.", "Let's go home.", "Home at last."])
def test_restore_replays_the_same_intents(line):
    original, r1 = fresh()
    drive(original, lambda e: e.awaiting_advance and e.scene.speech == line)
    snap = original.snapshot_for_persist()
    mark = last_text_index(r1.intents)
    original.run_headless(choices=[0])
    expected = pairs(r1.intents[mark:])

    restored, r2 = fresh()
    restored.restore_snapshot(SessionSnapshot.from_dict(json.loads(json.dumps(snap.to_dict()))))
    assert restored.mode is Mode.LOADING
    assert r2.prepared.speech == line
    r2.clear()
    restored.run_headless(choices=[0])
    assert pairs(r2.intents) == expected
    assert restored.flags.as_dict() == original.flags.as_dict()


def test_restore_mid_effect_replays_the_effect():
    original, r1 = fresh()
    drive(original, lambda e: e.mode is Mode.EFFECT_RUNNING and e.cursor.conversation == "good")
    snap = original.snapshot_for_persist()
    assert snap.cursor.conversation == "good" and snap.cursor.index == 0
    assert snap.scene.faded_out is False
    mark = len(r1.intents) - 1
    original.run_headless()
    expected = pairs(r1.intents[mark:])

    restored, r2 = fresh()
    restored.restore_snapshot(snap)
    r2.clear()
    restored.run_headless()
    assert pairs(r2.intents) == expected


def test_snapshot_roundtrip_is_stable():
    engine, _ = fresh()
    engine.run_headless(choices=[1])
    snap = engine.snapshot_for_persist()
    other, _ = fresh()
    other.restore_snapshot(snap)
    assert other.snapshot_for_persist() == snap
    assert SessionSnapshot.from_dict(json.loads(json.dumps(snap.to_dict()))) == snap


def test_restore_rejects_unknown_conversation():
    engine, _ = fresh()
    engine.resources_ready()
    snap = engine.snapshot_for_persist()
    snap.cursor.conversation = "deleted"
    before = engine.cursor.state
    with pytest.raises(NavigationError):
        engine.restore_snapshot(snap)
    assert engine.cursor.state == before
    assert engine.mode is Mode.NORMAL


def test_slot_save_and_load_with_memory_store():
    store = MemorySaveStore()
    engine, _ = fresh(save_store=store)
    engine.resources_ready()
    engine.advance()
    # the sprite move is running: the slot gets the state from before it
    assert engine.mode is Mode.EFFECT_RUNNING
    assert engine.save_to_slot(3)
    assert store.list_slots() == [3]
    engine.effect_finished(engine.current_effect.effect_id)
    engine.advance()
    assert engine.mode is Mode.AWAITING_CHOICE
    assert engine.load_from_slot(3)
    assert engine.mode is Mode.LOADING
    assert engine.cursor.index == 6
    assert engine.scene.sprites["mia"].x == 512.0
    engine.resources_ready()
    assert engine.mode is Mode.EFFECT_RUNNING
    assert engine.scene.sprites["mia"].x == 412.0
    assert not engine.load_from_slot(9)


def test_quicksave_and_quickload():
    store = MemorySaveStore()
    engine, renderer = fresh(save_store=store)
    engine.resources_ready()
    assert engine.quicksave()
    engine.run_headless()
    assert engine.mode is Mode.ENDED
    assert engine.quickload()
    engine.resources_ready()
    assert engine.mode is Mode.NORMAL
    assert renderer.intents[-1].payload["text"] == "It's late."


def test_saving_without_a_store():
    engine, _ = fresh()
    assert not engine.save_to_slot(1)
    assert not engine.quicksave()
    assert not engine.quickload()


def test_autosave_system_call_writes_slot_zero():
    store = MemorySaveStore()
    renderer = DummyRenderer()
    engine = Engine(compile_document({"start": [".setflag:x:4", ".systemcall:autosave", "saved"]}),
                    renderer, save_store=store)
    engine.resources_ready()
    data = store.read_slot(AUTOSAVE_SLOT)
    assert data is not None
    assert data["flags"] == {"x": 4}
    assert data["cursor"]["index"] == 1
    assert "ts" in data


def test_file_save_store(tmp_path: Path):
    store = FileSaveStore(tmp_path / "saves")
    assert store.read_slot(1) is None
    assert store.read_quick() is None
    assert store.write_slot(1, {"flags": {"a": 1}})
    assert store.write_slot(12, {"flags": {}})
    assert store.write_quick({"flags": {"q": 2}})
    assert (tmp_path / "saves" / "slot_01.json").exists()
    assert store.read_slot(1)["flags"] == {"a": 1}
    assert store.read_quick()["flags"] == {"q": 2}
    assert store.list_slots() == [1, 12]
    assert store.delete_slot(12)
    assert not store.delete_slot(12)
    assert store.list_slots() == [1]


def test_file_store_ignores_corrupt_saves(tmp_path: Path):
    store = FileSaveStore(lambda: tmp_path)
    (tmp_path / "slot_02.json").write_text("{oops", encoding="utf-8")
    assert store.read_slot(2) is None


def test_engine_with_file_store(tmp_path: Path):
    store = FileSaveStore(tmp_path)
    engine, _ = fresh(save_store=store)
    engine.resources_ready()
    engine.save_to_slot(1)
    other, r2 = fresh(save_store=store)
    assert other.load_from_slot(1)
    other.resources_ready()
    assert other.scene.background == "street"
    assert other.scene.music == "walk.ogg"
    assert "mia" in other.scene.sprites
    assert r2.intents[-1].payload["text"] == "It's late."


def test_restore_into_the_same_engine_resets_timed_text():
    engine = Engine(compile_document({"start": ["A", ".setcinematictext:1", "B", "C"]}), DummyRenderer())
    engine.resources_ready()
    saved = engine.snapshot_for_persist()
    engine.advance()
    assert engine.timed_text.cinematic.enabled
    engine.restore_snapshot(saved)
    engine.resources_ready()
    assert engine.session.ui.cinematic_seconds == 0.0
    assert not engine.timed_text.cinematic.enabled
    for _ in range(120):
        engine.tick(1 / 60)
    assert engine.cursor.index == 0
    assert engine.awaiting_advance
    assert engine.scene.speech == "A"


def test_prepared_scene_is_a_copy():
    doc = {"start": [".setbackground:street", "one", ".setbackground:park", "two"]}
    engine = Engine(compile_document(doc), DummyRenderer())
    engine.resources_ready()
    snap = engine.snapshot_for_persist()
    renderer = DummyRenderer()
    restored = Engine(compile_document(doc), renderer)
    restored.restore_snapshot(snap)
    restored.resources_ready()
    restored.advance()
    assert restored.scene.background == "park"
    assert renderer.prepared.background == "street"
    assert renderer.prepared.speech == "one"

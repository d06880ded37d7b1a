from __future__ import annotations

import pytest

from dotvn.engine.engine import Engine, Mode
from dotvn.engine.intents import IntentKind
from dotvn.engine.renderer import DummyRenderer
from dotvn.script.errors import ChoiceIndexError
from dotvn.script.parser import compile_document


DOC = {
    "start": ["Which way?", ".jumponchoice:Left:left:Right:right"],
    "left": ["You went left."],
    "right": ["You went right."],
}


def make_engine(doc, **kw):
    renderer = DummyRenderer()
    return Engine(compile_document(doc), renderer, **kw), renderer


def shown(renderer):
    return [i.payload["text"] for i in renderer.intents if i.kind is IntentKind.SHOW_TEXT]


def test_jump_choice():
    engine, renderer = make_engine(DOC)
    engine.resources_ready()
    engine.advance()
    assert engine.mode is Mode.AWAITING_CHOICE
    assert [o.text for o in engine.pending_choices] == ["Left", "Right"]
    menu = [i for i in renderer.intents if i.kind is IntentKind.SHOW_CHOICES][-1]
    assert menu.payload["options"] == ["Left", "Right"]
    assert engine.choose(1)
    assert engine.mode is Mode.NORMAL
    assert engine.cursor.conversation == "right"
    assert shown(renderer)[-1] == "You went right."
    assert IntentKind.CLEAR_CHOICES in renderer.kinds()


def test_modify_choice_applies_delta_and_advances():
    engine, renderer = make_engine({"start": [
        ".modifyflagbychoice:Be kind:karma:2:Be rude:karma:-1",
        "Noted.",
    ]})
    engine.resources_ready()
    engine.choose(0)
    assert engine.flag("karma") == 2
    assert engine.cursor.index == 1
    assert shown(renderer) == ["Noted."]


def test_show_choice_and_jump_displays_the_line_first():
    engine, renderer = make_engine({
        "start": [".setspeaker:Ann", ".showchoiceandjump:Tea or coffee?:Tea:tea:Coffee:coffee"],
        "tea": ["Tea it is."],
        "coffee": ["Coffee it is."],
    })
    engine.resources_ready()
    kinds = renderer.kinds()
    assert kinds[-2:] == [IntentKind.SHOW_TEXT, IntentKind.SHOW_CHOICES]
    text = renderer.intents[-2].payload
    assert (text["speaker"], text["text"]) == ("Ann", "Tea or coffee?")
    engine.choose(0)
    assert shown(renderer)[-1] == "Tea it is."


def test_show_choice_and_modify():
    engine, _ = make_engine({"start": [".showchoiceandmodify:How many?:One:n:1:Two:n:2", "ok"]})
    engine.run_headless(choices=[1])
    assert engine.flag("n") == 2


def test_choice_out_of_range_is_fatal():
    errors = []
    engine, _ = make_engine(DOC)
    engine.events.subscribe("engine.error", errors.append)
    engine.resources_ready()
    engine.advance()
    assert not engine.choose(5)
    assert engine.mode is Mode.ENDED
    assert isinstance(engine.error, ChoiceIndexError)
    assert engine.error.count == 2
    assert len(errors) == 1


def test_choice_out_of_range_strict():
    engine, _ = make_engine(DOC, strict=True)
    engine.resources_ready()
    engine.advance()
    with pytest.raises(ChoiceIndexError):
        engine.choose(-1)


def test_choose_outside_a_menu_is_ignored():
    engine, _ = make_engine(DOC)
    engine.resources_ready()
    assert not engine.choose(0)
    assert engine.mode is Mode.NORMAL
    assert engine.error is None


def test_choice_menu_keeps_a_safe_snapshot():
    engine, _ = make_engine({"start": [".setflag:gold:1", ".jumponchoice:A:a:B:b"], "a": ["a"], "b": ["b"]})
    engine.resources_ready()
    assert engine.session.has_safe
    engine.set_flag("gold", 50)
    snap = engine.snapshot_for_persist()
    assert snap.flags == {"gold": 1}
    assert snap.cursor.index == 1
    engine.choose(0)
    assert not engine.session.has_safe
    assert engine.snapshot_for_persist().flags == {"gold": 50}


def test_choice_sets():
    engine, renderer = make_engine({
        "start": [
            ".addtochoiceset:hub:Library:library",
            ".addtochoiceset:hub:Garden:garden",
            ".addtochoiceset:hub:Attic:attic",
            ".removefromchoiceset:hub:Garden",
            ".showchoiceset:hub",
        ],
        "library": ["Books."],
        "garden": ["Flowers."],
        "attic": ["Dust."],
    })
    engine.resources_ready()
    assert [o.text for o in engine.pending_choices] == ["Library", "Attic"]
    engine.choose(1)
    assert shown(renderer) == ["Dust."]


def test_adding_an_existing_text_replaces_it():
    engine, _ = make_engine({"start": [
        ".addtochoiceset:hub:Go:one",
        ".addtochoiceset:hub:Go:two",
        "wait",
    ]})
    engine.resources_ready()
    assert engine.session.choice_sets["hub"] == [("Go", "two")]


def test_empty_choice_set_is_skipped():
    engine, renderer = make_engine({"start": [
        ".addtochoiceset:hub:Go:start",
        ".wipechoiceset:hub",
        ".showchoiceset:hub",
        ".showchoiceset:never_made",
        "nothing to pick",
    ]})
    engine.resources_ready()
    assert engine.mode is Mode.NORMAL
    assert "hub" not in engine.session.choice_sets
    assert shown(renderer) == ["nothing to pick"]


def test_headless_run_takes_listed_choices():
    engine, renderer = make_engine(DOC)
    engine.run_headless(choices=[1])
    assert engine.mode is Mode.ENDED
    assert shown(renderer) == ["Which way?", "You went right."]
    engine2, renderer2 = make_engine(DOC)
    engine2.run_headless()
    assert shown(renderer2)[-1] == "You went left."


def test_non_numeric_choice_is_a_choice_error():
    engine, _ = make_engine(DOC)
    engine.resources_ready()
    engine.advance()
    assert not engine.choose("left")
    assert engine.mode is Mode.ENDED
    assert isinstance(engine.error, ChoiceIndexError)
    assert engine.error.index == "left"


def test_numeric_string_choice_is_accepted():
    engine, renderer = make_engine(DOC)
    engine.resources_ready()
    engine.advance()
    assert engine.choose("1")
    assert engine.cursor.conversation == "right"
    assert shown(renderer)[-1] == "You went right."

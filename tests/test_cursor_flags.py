from __future__ import annotations

import pytest

from dotvn.engine.cursor import Cursor, CursorState
from dotvn.engine.flags import Flags
from dotvn.script.errors import NavigationError
from dotvn.script.parser import compile_document


SCRIPT = compile_document({
    "start": ["a", "b", "c"],
    "side": ["x"],
}, name="cursor")


def test_cursor_advance_counts_and_clamps():
    c = Cursor(SCRIPT)
    assert c.current().text == "a"
    c.advance()
    c.advance()
    assert (c.index, c.units_completed) == (2, 2)
    c.advance(10)
    assert c.exhausted
    assert c.index == len(c) == 3
    assert c.units_completed == 3
    assert c.current() is None


def test_skip_is_not_counted():
    c = Cursor(SCRIPT)
    c.advance()
    c.skip()
    assert c.index == 2
    assert c.units_completed == 1


def test_switch_conversation_resets_position():
    c = Cursor(SCRIPT)
    c.advance()
    c.switch_conversation("side")
    assert c.state == CursorState("side", 0, 0)
    assert c.current().text == "x"


def test_failed_switch_leaves_cursor_untouched():
    c = Cursor(SCRIPT)
    c.advance()
    with pytest.raises(NavigationError):
        c.switch_conversation("missing")
    assert c.state == CursorState("start", 1, 1)
    assert c.current().text == "b"


def test_rebind_clamps_saved_index():
    c = Cursor(SCRIPT, "side")
    c.rebind(SCRIPT, CursorState("start", 99, 4))
    assert c.conversation == "start"
    assert c.index == 3
    assert c.units_completed == 4
    with pytest.raises(NavigationError):
        c.rebind(SCRIPT, CursorState("gone", 0, 0))
    assert c.conversation == "start"


def test_cursor_state_dict_roundtrip():
    st = CursorState("side", 1, 7)
    assert CursorState.from_dict(st.to_dict()) == st
    assert CursorState.from_dict({}) == CursorState()


def test_flags_default_to_zero():
    f = Flags()
    assert f.get("rep") == 0
    assert f["rep"] == 0
    assert "rep" not in f
    f.set("gold", 10)
    assert f.modify("gold", -3) == 7
    assert f.modify("new", 2) == 2
    assert sorted(f) == ["gold", "new"]
    assert len(f) == 2


def test_flags_replace_and_copy():
    f = Flags({"a": 1})
    snapshot = f.as_dict()
    f.set("a", 5)
    assert snapshot == {"a": 1}
    f.replace({"b": "3"})
    assert f.as_dict() == {"b": 3}

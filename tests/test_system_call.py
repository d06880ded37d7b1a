from __future__ import annotations

import logging

from dotvn.engine.engine import Engine
from dotvn.engine.system_call import DefaultSystemCall, ISystemCall
from dotvn.script.parser import compile_document


class RecordingCall(ISystemCall):
    def __init__(self):
        self.calls = []

    def send_call(self, args):
        self.calls.append(list(args))
        return "ignored"


def test_engine_forwards_arguments():
    rec = RecordingCall()
    engine = Engine(compile_document({"start": [".systemcall:achievement:first_kiss", "after"]}), system_call=rec)
    engine.resources_ready()
    assert rec.calls == [["achievement", "first_kiss"]]
    assert engine.cursor.index == 1


def test_registered_handler_can_touch_flags():
    calls = DefaultSystemCall()
    engine = Engine(compile_document({"start": [".systemcall:minigame:cards", ".isflag:won:1", "You won!", "Done."]}),
                    system_call=calls)
    calls.register("MiniGame", lambda args: engine.set_flag("won", 1 if args == ["cards"] else 0))
    engine.run_headless()
    assert engine.flag("won") == 1
    assert engine.textbox.history[0].text == "You won!"


def test_unknown_call_is_logged(caplog):
    calls = DefaultSystemCall()
    with caplog.at_level(logging.WARNING, logger="dotvn.engine.system_call"):
        assert calls.send_call(["teleport", "moon"]) is None
    assert "teleport" in caplog.text
    assert calls.send_call([]) is None


def test_log_call(caplog):
    calls = DefaultSystemCall()
    with caplog.at_level(logging.INFO, logger="dotvn.engine.system_call"):
        calls.send_call(["log", "reached", "ending"])
    assert "reached ending" in caplog.text


def test_autosave_without_store():
    calls = DefaultSystemCall()
    assert calls.autosave() is False
    saved = []
    calls = DefaultSystemCall(autosave=lambda: saved.append(1) or True)
    assert calls.send_call(["AutoSave"]) is True
    assert saved == [1]


def test_nil_argument_reaches_the_host_as_none():
    rec = RecordingCall()
    engine = Engine(compile_document({"start": [".systemcall:score:nil:10", "after"]}), system_call=rec)
    engine.resources_ready()
    assert rec.calls == [["score", None, "10"]]
    assert engine.error is None

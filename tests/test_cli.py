from __future__ import annotations

import json
from pathlib import Path

from dotvn.cli import main


def write(tmp_path: Path, name: str, doc) -> Path:
    p = tmp_path / name
    p.write_text(json.dumps(doc), encoding="utf-8")
    return p


def test_check_ok(tmp_path: Path, capsys):
    p = write(tmp_path, "ok.json", {"start": ["hi", ".setflag:a:1"], "other": ["x"]})
    assert main(["check", str(p)]) == 0
    assert "OK (2 conversations, 3 units)" in capsys.readouterr().out


def test_check_reports_errors(tmp_path: Path, capsys):
    p = write(tmp_path, "bad.json", {"start": [".setflag:a"]})
    assert main(["check", str(p)]) == 1
    assert "setflag" in capsys.readouterr().out


def test_missing_script(tmp_path: Path):
    assert main(["check", str(tmp_path / "nope.json")]) == 2
    assert main(["run", str(tmp_path / "nope.json")]) == 2


def test_no_subcommand():
    assert main([]) == 2


def test_run_headless_with_choices(tmp_path: Path, capsys):
    p = write(tmp_path, "story.json", {
        "start": ["Pick.", ".jumponchoice:A:a:B:b"],
        "a": ["went a"],
        "b": ["went b"],
    })
    assert main(["run", str(p), "--echo", "--choices", "1"]) == 0
    out = capsys.readouterr().out
    assert "went b" in out
    assert "went a" not in out


def test_run_ends_with_error(tmp_path: Path):
    p = write(tmp_path, "broken.json", {"start": ["x", ".setconversation:gone"]})
    assert main(["run", str(p)]) == 1
    assert main(["run", str(p), "--strict"]) == 1


def test_run_load_error(tmp_path: Path):
    p = write(tmp_path, "nostart.json", {"intro": ["x"]})
    assert main(["run", str(p)]) == 1


def test_run_bad_choices(tmp_path: Path):
    p = write(tmp_path, "story.json", {"start": ["x"]})
    assert main(["run", str(p), "--choices", "one"]) == 2


def test_run_uses_config_and_sibling_scripts(tmp_path: Path):
    write(tmp_path, "part2.json", {"start": [".systemcall:autosave", "part two"]})
    p = write(tmp_path, "part1.json", {"start": ["part one", ".switchscript:part2"]})
    cfg = write(tmp_path, "cfg.json", {"text": {"typewriter_cps": 40}})
    saves = tmp_path / "saves"
    assert main(["--log-level", "DEBUG", "run", str(p), "--config", str(cfg), "--saves", str(saves)]) == 0
    data = json.loads((saves / "slot_00.json").read_text(encoding="utf-8"))
    assert data["script"] == "part2"
    assert data["ui"]["typewriter_cps"] == 40

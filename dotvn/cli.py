from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .engine.adapters.scripts import ScriptLibrary
from .engine.adapters.storage import FileSaveStore
from .engine.config_io import load_config
from .engine.engine import Engine
from .engine.renderer import DummyRenderer
from .script.errors import ScriptError
from .script.parser import load_script

logger = logging.getLogger(__name__)


def _parse_choices(text: Optional[str]) -> List[int]:
    if not text:
        return []
    out: List[int] = []
    for part in text.split(","):
        part = part.strip()
        if part:
            out.append(int(part))
    return out


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dotvn", description="dotvn visual novel script runner")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = parser.add_subparsers(dest="cmd")

    p_check = sub.add_parser("check", help="Compile a script and report errors")
    p_check.add_argument("script", type=str, help="Path to a .json/.plist script")

    p_run = sub.add_parser("run", help="Run a script")
    p_run.add_argument("script", type=str, help="Path to a .json/.plist script")
    p_run.add_argument("--pygame", action="store_true", help="Use the pygame host (interactive)")
    p_run.add_argument("--strict", action="store_true", help="Raise script errors instead of ending quietly")
    p_run.add_argument("--config", type=str, default=None, help="Path to a JSON config file")
    p_run.add_argument("--choices", type=str, default=None, help="Headless choice picks, e.g. 0,1,0")
    p_run.add_argument("--assets", type=str, default=None, help="Asset directory for the pygame host")
    p_run.add_argument("--saves", type=str, default=None, help="Save directory (default: <script dir>/saves)")
    p_run.add_argument("--echo", action="store_true", help="Print intents in headless mode")
    return parser


def _cmd_check(script_path: Path) -> int:
    try:
        script = load_script(script_path)
    except ScriptError as e:
        print(f"{script_path}: {e}")  # noqa: T201
        return 1
    units = sum(len(units) for units in script.conversations.values())
    print(f"{script_path}: OK ({len(script.conversations)} conversations, {units} units)")  # noqa: T201
    return 0


def _cmd_run(args: argparse.Namespace, script_path: Path) -> int:
    try:
        script = load_script(script_path)
    except ScriptError as e:
        print(f"{script_path}: {e}")  # noqa: T201
        return 1
    cfg = load_config(args.config)
    saves = Path(args.saves) if args.saves else script_path.parent / "saves"
    store = FileSaveStore(saves)
    library = ScriptLibrary(script_path.parent)
    try:
        choices = _parse_choices(args.choices)
    except ValueError:
        print(f"Invalid --choices: {args.choices}")  # noqa: T201
        return 2

    if args.pygame:
        # local import keeps headless runs free of a display
        from .engine.host_pygame import PygameRenderer, run_pygame

        view = cfg["view"]
        renderer = PygameRenderer(size=(view["width"], view["height"]), title=script.name or "dotvn",
                                  asset_dir=args.assets or script_path.parent, frame_rate=view["frame_rate"])
        engine = Engine(script, renderer, save_store=store, library=library, config=cfg, strict=args.strict)
        try:
            run_pygame(engine, renderer)
        finally:
            renderer.close()
    else:
        engine = Engine(script, DummyRenderer(echo=args.echo), save_store=store, library=library,
                        config=cfg, strict=args.strict)
        engine.run_headless(choices)
    if engine.error is not None:
        print(f"Error: {engine.error}")  # noqa: T201
        return 1
    return 0


def main(argv: List[str] | None = None) -> int:
    parser = _build_parser()
    argv_list = list(argv) if argv is not None else sys.argv[1:]
    args = parser.parse_args(argv_list)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
                        format="%(levelname)s %(name)s: %(message)s")
    if args.cmd is None:
        parser.print_help()
        return 2

    script_path = Path(args.script)
    if not script_path.exists():
        print(f"Script not found: {script_path}")  # noqa: T201
        return 2
    if args.cmd == "check":
        return _cmd_check(script_path)
    if args.cmd == "run":
        try:
            return _cmd_run(args, script_path)
        except ScriptError as e:
            # strict mode re-raises session errors
            print(f"Error: {e}")  # noqa: T201
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

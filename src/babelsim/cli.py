from __future__ import annotations

import argparse
import logging
import queue
import random
import threading
import time
from pathlib import Path
from typing import List, Optional

from babelsim.commands import INTERRUPT, App, parse_command
from babelsim.engine import EngineConfig, Game, WallClock
from babelsim.reporting import print_screen, render_systems
from babelsim.storage import SaveFileError, load_state, save_state

logger = logging.getLogger(__name__)


def _autoload_or_new(save_path: Optional[Path], rng: random.Random, cfg: EngineConfig) -> Game:
    state = load_state(save_path)
    if state is None:
        game = Game.fresh(rng=rng, config=cfg)
        game.add_message("Welcome to the Array of Babel.")
    else:
        game = Game.from_state(state, rng=rng, config=cfg)
        game.add_message("Loaded save state.")
    return game


def _read_commands(q: "queue.Queue[str]") -> None:
    while True:
        try:
            line = input()
        except (EOFError, KeyboardInterrupt):
            q.put(INTERRUPT)
            return
        cmd = parse_command(line)
        if cmd is None:
            print(f"Unknown command: {line.strip()!r}")
            continue
        q.put(cmd)


def run_interactive(game: Game, save_path: Optional[Path]) -> int:
    app = App()
    app.clamp(game)
    commands: "queue.Queue[str]" = queue.Queue()
    reader = threading.Thread(target=_read_commands, args=(commands,), daemon=True)
    reader.start()

    tick = max(1, game.cfg.tick_ms) / 1000.0
    clock = WallClock()
    last_seen: List[str] = []
    print_screen(game, app)

    should_quit = False
    while not should_quit:
        time.sleep(tick)
        game.update(clock.elapsed_ms())
        app.clamp(game)

        redraw = False
        while True:
            try:
                cmd = commands.get_nowait()
            except queue.Empty:
                break
            redraw = True
            if app.handle(game, cmd):
                should_quit = True
                break

        msgs = game.recent_messages()
        if redraw or msgs != last_seen:
            last_seen = msgs
            if not should_quit:
                print_screen(game, app)

    if app.pending_job is not None:
        game.return_job(app.pending_job)
        app.pending_job = None
    path = save_state(game.state, save_path)
    print(f"Saved to {path}.")
    return 0


def run_headless(game: Game, seconds: float, save_path: Optional[Path], persist: bool) -> int:
    remaining = int(max(0.0, seconds) * 1000)
    step = max(1, game.cfg.tick_ms)
    while remaining > 0:
        delta = min(step, remaining)
        game.update(delta)
        remaining -= delta

    for line in render_systems(game, App()):
        print(line)
    for m in game.recent_messages():
        print(f"  {m}")
    if persist:
        save_state(game.state, save_path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="babelsim", description="Array of Babel: terminal processor idle game.")
    parser.add_argument("--seed", type=int, default=None, help="seed for the simulation random source")
    parser.add_argument("--save", type=Path, default=None, help="save file (default data/state.json)")
    parser.add_argument("--tick-ms", type=int, default=100, help="simulation tick interval in milliseconds")
    parser.add_argument("--log-level", default="WARNING", help="python logging level (DEBUG, INFO, ...)")

    sub = parser.add_subparsers(dest="command")
    sim = sub.add_parser("simulate", help="advance the game without input and print a summary")
    sim.add_argument("--seconds", type=float, default=60.0, help="simulated seconds to advance")
    sim.add_argument("--no-save", action="store_true", help="do not write the result back to the save file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    rng = random.Random(args.seed)
    cfg = EngineConfig(tick_ms=max(1, int(args.tick_ms)))
    try:
        game = _autoload_or_new(args.save, rng, cfg)
    except SaveFileError as e:
        logger.error("cannot load save: %s", e)
        print(f"Save file is unreadable: {e}")
        return 1

    if args.command == "simulate":
        return run_headless(game, args.seconds, args.save, persist=not args.no_save)
    return run_interactive(game, args.save)

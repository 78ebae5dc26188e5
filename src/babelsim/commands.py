from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from babelsim.engine import Game
from babelsim.models import Job
from babelsim.processors import AssignmentError
from babelsim.store import PurchaseError

FOCUS_JOBS = "jobs"
FOCUS_PROCESSORS = "processors"

QUIT = "quit"
INTERRUPT = "interrupt"
RETURN_PENDING = "return"
TOGGLE_STORE = "store"
CYCLE_DAEMON = "daemon"
TOGGLE_COOLING_MINS = "cooling"
REPLACE_UNIT = "replace"
REPLACE_MODEL = "replace-model"
NEXT_FOCUS = "tab"
SHOW_JOBS = "jobs"
SHOW_PROCESSORS = "procs"
UP = "up"
DOWN = "down"
ENTER = "enter"
ACTIVATE = "activate"

# Typed words accepted by the line-based CLI; single letters mirror the hotkeys.
ALIASES: Dict[str, str] = {
    "q": QUIT,
    "quit": QUIT,
    "exit": QUIT,
    "esc": RETURN_PENDING,
    "x": RETURN_PENDING,
    "return": RETURN_PENDING,
    "s": TOGGLE_STORE,
    "store": TOGGLE_STORE,
    "d": CYCLE_DAEMON,
    "daemon": CYCLE_DAEMON,
    "D": TOGGLE_COOLING_MINS,
    "cooling": TOGGLE_COOLING_MINS,
    "r": REPLACE_UNIT,
    "replace": REPLACE_UNIT,
    "R": REPLACE_MODEL,
    "replace-model": REPLACE_MODEL,
    "tab": NEXT_FOCUS,
    "left": SHOW_PROCESSORS,
    "procs": SHOW_PROCESSORS,
    "right": SHOW_JOBS,
    "jobs": SHOW_JOBS,
    "k": UP,
    "up": UP,
    "j": DOWN,
    "down": DOWN,
    "a": ACTIVATE,
    "enter": ENTER,
    "": ACTIVATE,
}


def parse_command(line: str) -> Optional[str]:
    s = line.strip()
    if s in ALIASES:
        return ALIASES[s]
    return ALIASES.get(s.lower())


def _wrap(index: int, delta: int, length: int) -> int:
    idx = index + delta
    if idx < 0:
        return length - 1
    if idx >= length:
        return 0
    return idx


@dataclass
class App:
    """Selection state of one player session and the dispatch of its commands."""

    focus: str = FOCUS_JOBS
    selected_job: int = 0
    selected_processor: int = 0
    selected_store_item: int = 0
    store_open: bool = False
    pending_job: Optional[Job] = None

    def next_focus(self) -> None:
        self.focus = FOCUS_PROCESSORS if self.focus == FOCUS_JOBS else FOCUS_JOBS

    def toggle_store(self) -> None:
        self.store_open = not self.store_open
        if self.store_open:
            self.selected_store_item = 0

    def clamp(self, game: Game) -> None:
        self.selected_job = min(self.selected_job, max(0, len(game.state.jobs) - 1))
        self.selected_processor = min(self.selected_processor, max(0, len(game.state.processors) - 1))
        self.selected_store_item = min(self.selected_store_item, max(0, len(game.store_items()) - 1))

    def _processor_index(self, game: Game) -> Optional[int]:
        if not game.state.processors:
            return None
        return min(self.selected_processor, len(game.state.processors) - 1)

    def handle(self, game: Game, command: str) -> bool:
        """Apply one command; returns True when the session should end."""

        if command == INTERRUPT:
            return True
        if self.store_open:
            self._handle_store(game, command)
            return False
        if command == QUIT:
            return True

        if command == RETURN_PENDING:
            if self.pending_job is not None:
                game.return_job(self.pending_job)
                self.pending_job = None
        elif command == TOGGLE_STORE:
            self.toggle_store()
        elif command in (CYCLE_DAEMON, TOGGLE_COOLING_MINS):
            self._automation(game, command)
        elif command in (REPLACE_UNIT, REPLACE_MODEL):
            self._replace(game, command)
        elif command == NEXT_FOCUS:
            self.next_focus()
        elif command == SHOW_PROCESSORS:
            self.focus = FOCUS_PROCESSORS
        elif command == SHOW_JOBS:
            self.focus = FOCUS_JOBS
        elif command in (UP, DOWN):
            self._move(game, -1 if command == UP else 1)
        elif command in (ENTER, ACTIVATE):
            self._enter(game)
        self.clamp(game)
        return False

    def _move(self, game: Game, delta: int) -> None:
        if self.focus == FOCUS_JOBS:
            if game.state.jobs:
                self.selected_job = _wrap(self.selected_job, delta, len(game.state.jobs))
        elif game.state.processors:
            self.selected_processor = _wrap(self.selected_processor, delta, len(game.state.processors))

    def _automation(self, game: Game, command: str) -> None:
        if self.focus != FOCUS_PROCESSORS:
            game.add_message("Focus a processor to adjust automation.")
            return
        idx = self._processor_index(game)
        if idx is None:
            game.add_message("No processors available.")
        elif command == TOGGLE_COOLING_MINS:
            game.toggle_honor_cooling(idx)
        else:
            game.cycle_daemon_mode(idx)

    def _replace(self, game: Game, command: str) -> None:
        if self.focus != FOCUS_PROCESSORS:
            game.add_message("Focus a processor to replace hardware.")
            return
        idx = self._processor_index(game)
        if idx is None:
            game.add_message("No processors available to replace.")
            return
        try:
            if command == REPLACE_MODEL:
                game.replace_model_direct(idx)
            else:
                game.replace_processor_direct(idx)
        except PurchaseError as e:
            game.add_message(f"Replacement failed: {e}")

    def _enter(self, game: Game) -> None:
        if self.focus == FOCUS_JOBS:
            if self.pending_job is not None:
                game.add_message("A job is already awaiting assignment.")
                return
            job = game.take_job(self.selected_job)
            if job is None:
                game.add_message("No jobs available to queue.")
                return
            self.pending_job = job
            game.add_message(f"{job.name} queued for assignment.")
            return

        idx = self._processor_index(game)
        if idx is None:
            game.add_message("No processors available.")
            return
        if self.pending_job is None:
            game.accept_assist_suggestion(idx)
            return
        try:
            game.assign_job_to_processor(self.pending_job, idx, daemon=False)
        except AssignmentError as e:
            game.add_message(f"Assignment failed: {e}")
            return
        self.pending_job = None

    def _handle_store(self, game: Game, command: str) -> None:
        if command in (RETURN_PENDING, TOGGLE_STORE):
            self.toggle_store()
        elif command == UP:
            self.selected_store_item = max(0, self.selected_store_item - 1)
        elif command == DOWN:
            if self.selected_store_item + 1 < len(game.store_items()):
                self.selected_store_item += 1
        elif command == ENTER:
            try:
                game.purchase_item(self.selected_store_item, self._processor_index(game))
            except PurchaseError as e:
                game.add_message(f"Purchase failed: {e}")

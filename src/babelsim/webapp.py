from __future__ import annotations

import logging
import random
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from babelsim.commands import App
from babelsim.engine import EngineConfig, Game, WallClock
from babelsim.processors import AssignmentError, InvalidProcessorError
from babelsim.reporting import processor_snapshot, store_rows
from babelsim.storage import data_dir, load_state, reset_data_files, save_state, state_to_dict
from babelsim.store import InvalidItemError, PurchaseError

logger = logging.getLogger(__name__)

_lock = threading.Lock()


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _new_game(save_path: Optional[Path], seed: Optional[int]) -> Game:
    rng = random.Random(seed)
    state = load_state(save_path)
    if state is None:
        game = Game.fresh(rng=rng, config=EngineConfig())
        game.add_message("Welcome to the Array of Babel.")
        return game
    game = Game.from_state(state, rng=rng, config=EngineConfig())
    game.add_message("Loaded save state.")
    return game


class _Ticker(threading.Thread):
    """Background clock that advances the shared game in real time."""

    def __init__(self, ctx: Dict[str, Any]) -> None:
        super().__init__(daemon=True)
        self.ctx = ctx
        self.stop_event = threading.Event()

    def run(self) -> None:
        clock = WallClock()
        while not self.stop_event.wait(self.ctx["game"].cfg.tick_ms / 1000.0):
            with _lock:
                self.ctx["game"].update(clock.elapsed_ms())


def create_app(
    game: Optional[Game] = None,
    save_path: Optional[Path] = None,
    seed: Optional[int] = None,
    live: bool = False,
) -> FastAPI:
    ctx: Dict[str, Any] = {
        "game": game if game is not None else _new_game(save_path, seed),
        "ui": App(),
    }

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        ticker = _Ticker(ctx) if live else None
        if ticker is not None:
            ticker.start()
        yield
        if ticker is not None:
            ticker.stop_event.set()
            ticker.join(timeout=1.0)

    app = FastAPI(title="Array of Babel API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if save_path is None:
        data_dir()

    def _game() -> Game:
        return ctx["game"]

    def _ui() -> App:
        return ctx["ui"]

    def _valid_processor(i: int) -> bool:
        return 0 <= i < len(_game().state.processors)

    def _state_dto() -> Dict[str, Any]:
        g = _game()
        s = g.state
        pending = _ui().pending_job
        return {
            "credits": s.credits,
            "jobs": state_to_dict(s)["jobs"],
            "processors": [processor_snapshot(p) for p in s.processors],
            "storage": {"stored": s.storage.stored, "capacity": s.storage.capacity},
            "unlocked_tags": list(s.unlocked_tags),
            "daemon_unlocked": s.daemon_unlocked,
            "thermal_paste_active": g.thermal_paste_active(),
            "job_spawn_progress": round(g.job_spawn_progress(), 4),
            "day_progress": round(g.day_progress(), 4),
            "upkeep": g.total_upkeep(),
            "electricity": g.total_electricity_cost(),
            "pending_job": None if pending is None else pending.name,
            "messages": g.recent_messages(),
        }

    @app.get("/")
    def root():
        return {"name": "array-of-babel", "api": "/api/state", "store": "/api/store"}

    @app.get("/api/state")
    def api_state():
        with _lock:
            return _state_dto()

    @app.get("/api/store")
    def api_store(processor_index: Optional[int] = None):
        with _lock:
            if processor_index is None and _game().state.processors:
                processor_index = _ui().selected_processor
            return {"credits": _game().state.credits, "items": store_rows(_game(), processor_index)}

    @app.get("/api/processors/{i}/assist")
    def api_assist(i: int):
        with _lock:
            if not _valid_processor(i):
                return _error(404, "processor not found")
            sug = _game().assist_suggestion(i)
            if sug is None:
                return {"suggestion": None}
            job = _game().state.jobs[sug.job_index]
            return {
                "suggestion": {
                    "job_index": sug.job_index,
                    "job": job.name,
                    "eta_secs": sug.eta_secs,
                    "reliability": sug.reliability,
                    "heat": sug.heat,
                }
            }

    @app.post("/api/advance")
    def api_advance(payload: dict = Body(default={})):
        try:
            ms = max(0, int(payload.get("ms") or 0))
        except (TypeError, ValueError):
            return _error(422, "ms must be an integer")
        with _lock:
            _game().update(ms)
            return _state_dto()

    @app.post("/api/jobs/{i}/take")
    def api_take_job(i: int):
        with _lock:
            ui = _ui()
            if ui.pending_job is not None:
                return _error(409, "a job is already awaiting assignment")
            job = _game().take_job(i)
            if job is None:
                return _error(404, "job not found")
            ui.pending_job = job
            _game().add_message(f"{job.name} queued for assignment.")
            return _state_dto()

    @app.post("/api/pending/return")
    def api_return_pending():
        with _lock:
            ui = _ui()
            if ui.pending_job is not None:
                _game().return_job(ui.pending_job)
                ui.pending_job = None
            return _state_dto()

    @app.post("/api/pending/assign")
    def api_assign_pending(payload: dict = Body(default={})):
        with _lock:
            ui = _ui()
            if ui.pending_job is None:
                return _error(409, "no job awaiting assignment")
            try:
                idx = int(payload.get("processor_index", ui.selected_processor))
            except (TypeError, ValueError):
                return _error(422, "processor_index must be an integer")
            try:
                _game().assign_job_to_processor(ui.pending_job, idx, daemon=False)
            except InvalidProcessorError as e:
                return _error(404, str(e))
            except AssignmentError as e:
                _game().add_message(f"Assignment failed: {e}")
                return _error(409, str(e))
            ui.pending_job = None
            return _state_dto()

    @app.post("/api/processors/{i}/daemon-mode")
    def api_cycle_daemon(i: int):
        with _lock:
            if not _valid_processor(i):
                return _error(404, "processor not found")
            _game().cycle_daemon_mode(i)
            return processor_snapshot(_game().state.processors[i])

    @app.post("/api/processors/{i}/cooling-mins")
    def api_toggle_cooling(i: int):
        with _lock:
            if not _valid_processor(i):
                return _error(404, "processor not found")
            _game().toggle_honor_cooling(i)
            return processor_snapshot(_game().state.processors[i])

    @app.post("/api/processors/{i}/replace")
    def api_replace(i: int):
        with _lock:
            if not _valid_processor(i):
                return _error(404, "processor not found")
            try:
                _game().replace_processor_direct(i)
            except PurchaseError as e:
                _game().add_message(f"Replacement failed: {e}")
                return _error(409, str(e))
            return _state_dto()

    @app.post("/api/processors/{i}/replace-model")
    def api_replace_model(i: int):
        with _lock:
            if not _valid_processor(i):
                return _error(404, "processor not found")
            try:
                _game().replace_model_direct(i)
            except PurchaseError as e:
                _game().add_message(f"Replacement failed: {e}")
                return _error(409, str(e))
            return _state_dto()

    @app.post("/api/processors/{i}/accept-assist")
    def api_accept_assist(i: int):
        with _lock:
            if not _valid_processor(i):
                return _error(404, "processor not found")
            accepted = _game().accept_assist_suggestion(i)
            dto = _state_dto()
            dto["accepted"] = accepted
            return dto

    @app.post("/api/store/{item}/purchase")
    def api_purchase(item: int, payload: dict = Body(default={})):
        with _lock:
            raw = payload.get("processor_index")
            try:
                processor_index = None if raw is None else int(raw)
            except (TypeError, ValueError):
                return _error(422, "processor_index must be an integer")
            try:
                _game().purchase_item(item, processor_index)
            except InvalidItemError as e:
                return _error(404, str(e))
            except PurchaseError as e:
                _game().add_message(f"Purchase failed: {e}")
                return _error(409, str(e))
            return _state_dto()

    @app.post("/api/save")
    def api_save():
        with _lock:
            p = save_state(_game().state, save_path)
            return {"saved": str(p)}

    @app.post("/api/reset")
    def api_reset():
        with _lock:
            reset_data_files(save_path)
            game = Game.fresh(rng=random.Random(seed), config=_game().cfg)
            game.add_message("Welcome to the Array of Babel.")
            ctx["game"] = game
            ctx["ui"] = App()
            logger.info("game reset")
            return _state_dto()

    return app


app = create_app()

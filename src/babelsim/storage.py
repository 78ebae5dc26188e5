from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from babelsim.models import (
    DAEMON_OFF,
    DEFAULT_COOLING_CAP,
    DEFAULT_HEAT_OUTPUT,
    DEFAULT_POWER_DRAW,
    DEFAULT_PURCHASE_COST,
    DEFAULT_RELIABILITY,
    DEFAULT_REPLACE_RATIO,
    GENERAL_TAG,
    BurntOut,
    DaemonPenalty,
    DataStorage,
    Destroyed,
    GameState,
    Idle,
    Job,
    ProcessorState,
    ProcessorStatus,
    Working,
)

logger = logging.getLogger(__name__)

SAVE_VERSION = "1.0.0"


class SaveFileError(Exception):
    """The save file exists but cannot be turned back into a game."""


def project_root() -> Path:
    # .../src/babelsim/storage.py -> parents[2]
    return Path(__file__).resolve().parents[2]


def data_dir() -> Path:
    p = project_root() / "data"
    p.mkdir(parents=True, exist_ok=True)
    return p


def state_path() -> Path:
    return data_dir() / "state.json"


def _job_to_dict(job: Job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "name": job.name,
        "tag": job.tag,
        "base_time_ms": job.base_time_ms,
        "base_reward": job.base_reward,
        "quality_target": job.quality_target,
        "data_output": job.data_output,
    }


def _status_to_dict(status: ProcessorStatus) -> Dict[str, Any]:
    if isinstance(status, Working):
        pen = status.daemon_penalty
        return {
            "kind": status.kind,
            "job": _job_to_dict(status.job),
            "remaining_ms": status.remaining_ms,
            "total_ms": status.total_ms,
            "daemon_penalty": None if pen is None else {"quality": pen.quality, "time_multiplier": pen.time_multiplier},
            "overheating": status.overheating,
        }
    return {"kind": status.kind}


def _processor_to_dict(p: ProcessorState) -> Dict[str, Any]:
    return {
        "name": p.name,
        "speed": p.speed,
        "quality_bias": p.quality_bias,
        "instruction_set": list(p.instruction_set),
        "upkeep_cost": p.upkeep_cost,
        "status": _status_to_dict(p.status),
        "reliability_base": p.reliability_base,
        "cooling_required": p.cooling_required,
        "cooling_level": p.cooling_level,
        "cooling_cap": p.cooling_cap,
        "hardening_level": p.hardening_level,
        "requires_cooling_min": p.requires_cooling_min,
        "finite_lifespan": p.finite_lifespan,
        "mttf_ticks": p.mttf_ticks,
        "wear": p.wear,
        "fragility": p.fragility,
        "replace_cost_ratio": p.replace_cost_ratio,
        "purchase_cost": p.purchase_cost,
        "power_draw_base": p.power_draw_base,
        "power_draw_mod": dict(p.power_draw_mod),
        "heat_output_base": p.heat_output_base,
        "daemon_mode": p.daemon_mode,
        "daemon_unlocked": p.daemon_unlocked,
        "daemon_affinity": dict(p.daemon_affinity),
        "daemon_priority": p.daemon_priority,
        "honor_cooling_mins": p.honor_cooling_mins,
        "daemon_penalty": {"quality": p.daemon_penalty.quality, "time_multiplier": p.daemon_penalty.time_multiplier},
    }


def state_to_dict(state: GameState) -> Dict[str, Any]:
    return {
        "credits": state.credits,
        "processors": [_processor_to_dict(p) for p in state.processors],
        "jobs": [_job_to_dict(j) for j in state.jobs],
        "storage": {"capacity": state.storage.capacity, "stored": state.storage.stored},
        "daemon_unlocked": state.daemon_unlocked,
        "daemon_enabled": state.daemon_enabled,
        "thermal_paste_timer_ms": state.thermal_paste_timer_ms,
        "job_counter": state.job_counter,
        "unlocked_tags": list(state.unlocked_tags),
        "store_purchases": list(state.store_purchases),
    }


def save_state(state: GameState, path: Path | None = None) -> Path:
    p = path or state_path()
    payload = {
        "version": SAVE_VERSION,
        "state": state_to_dict(state),
    }
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("saved game to %s", p)
    return p


def _load_job(d: Dict[str, Any]) -> Job:
    return Job(
        id=int(d["id"]),
        name=str(d.get("name", f"Task #{d['id']}")),
        tag=str(d.get("tag", GENERAL_TAG)),
        base_time_ms=int(d["base_time_ms"]),
        base_reward=int(d["base_reward"]),
        quality_target=int(d.get("quality_target", 0)),
        data_output=int(d.get("data_output", 0)),
    )


def _load_penalty(d: Any) -> DaemonPenalty:
    if not isinstance(d, dict):
        return DaemonPenalty()
    return DaemonPenalty(
        quality=int(d.get("quality", -5)),
        time_multiplier=float(d.get("time_multiplier", 1.10)),
    )


def _load_status(d: Any) -> ProcessorStatus:
    if not isinstance(d, dict):
        return Idle()
    kind = str(d.get("kind", "idle"))
    if kind == "working":
        total = int(d["total_ms"])
        pen = d.get("daemon_penalty")
        return Working(
            job=_load_job(d["job"]),
            remaining_ms=min(int(d.get("remaining_ms", total)), total),
            total_ms=total,
            daemon_penalty=None if pen is None else _load_penalty(pen),
            overheating=bool(d.get("overheating", False)),
        )
    if kind == "burnt_out":
        return BurntOut()
    if kind == "destroyed":
        return Destroyed()
    if kind == "idle":
        return Idle()
    raise SaveFileError(f"unknown processor status: {kind}")


def _load_processor(d: Dict[str, Any]) -> ProcessorState:
    p = ProcessorState(
        name=str(d["name"]),
        speed=float(d.get("speed", 1.0)),
        quality_bias=int(d.get("quality_bias", 0)),
        instruction_set=[str(t) for t in (d.get("instruction_set") or [GENERAL_TAG])],
        upkeep_cost=int(d.get("upkeep_cost", 0)),
        status=_load_status(d.get("status")),
        reliability_base=float(d.get("reliability_base", DEFAULT_RELIABILITY)),
        cooling_required=bool(d.get("cooling_required", False)),
        cooling_level=int(d.get("cooling_level", 0)),
        cooling_cap=int(d.get("cooling_cap", DEFAULT_COOLING_CAP)),
        hardening_level=int(d.get("hardening_level", 0)),
        requires_cooling_min=int(d.get("requires_cooling_min", 0)),
        finite_lifespan=bool(d.get("finite_lifespan", False)),
        mttf_ticks=int(d.get("mttf_ticks", 0)),
        wear=max(0.0, float(d.get("wear", 0.0))),
        fragility=float(d.get("fragility", 0.0)),
        replace_cost_ratio=float(d.get("replace_cost_ratio", DEFAULT_REPLACE_RATIO)),
        purchase_cost=int(d.get("purchase_cost", DEFAULT_PURCHASE_COST)),
        power_draw_base=float(d.get("power_draw_base", DEFAULT_POWER_DRAW)),
        power_draw_mod={str(k): float(v) for k, v in (d.get("power_draw_mod") or {}).items()},
        heat_output_base=float(d.get("heat_output_base", DEFAULT_HEAT_OUTPUT)),
        daemon_mode=str(d.get("daemon_mode", DAEMON_OFF)),
        daemon_unlocked=bool(d.get("daemon_unlocked", False)),
        daemon_affinity={str(k): float(v) for k, v in (d.get("daemon_affinity") or {}).items()},
        daemon_priority=int(d.get("daemon_priority", 0)),
        honor_cooling_mins=bool(d.get("honor_cooling_mins", True)),
        daemon_penalty=_load_penalty(d.get("daemon_penalty")),
    )
    p.ensure_runtime_defaults()
    return p


def state_from_dict(d: Dict[str, Any]) -> GameState:
    storage_d = d.get("storage") or {}
    capacity = int(storage_d.get("capacity", 120))
    stored = min(int(storage_d.get("stored", 0)), capacity)
    return GameState(
        credits=max(0, int(d.get("credits", 0))),
        processors=[_load_processor(pd) for pd in (d.get("processors") or [])],
        jobs=[_load_job(jd) for jd in (d.get("jobs") or [])],
        storage=DataStorage(capacity=capacity, stored=stored),
        daemon_unlocked=bool(d.get("daemon_unlocked", False)),
        daemon_enabled=bool(d.get("daemon_enabled", False)),
        thermal_paste_timer_ms=max(0, int(d.get("thermal_paste_timer_ms", 0))),
        job_counter=int(d.get("job_counter", 0)),
        unlocked_tags=[str(t) for t in (d.get("unlocked_tags") or [GENERAL_TAG])],
        store_purchases=[int(n) for n in (d.get("store_purchases") or [])],
    )


def load_state(path: Path | None = None) -> Optional[GameState]:
    """Read a save file. Missing file -> None; anything unreadable raises SaveFileError."""

    p = path or state_path()
    try:
        raw = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise SaveFileError(f"cannot read {p}: {e}") from e

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SaveFileError(f"{p} is not valid JSON: {e}") from e
    if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
        raise SaveFileError(f"{p} has no state section")

    try:
        return state_from_dict(payload["state"])
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SaveFileError(f"{p} is malformed: {e}") from e


def reset_data_files(path: Path | None = None) -> None:
    p = path or state_path()
    p.unlink(missing_ok=True)

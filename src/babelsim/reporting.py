from __future__ import annotations

from typing import Any, Dict, List, Optional

from babelsim import economy
from babelsim.commands import FOCUS_JOBS, App
from babelsim.engine import Game
from babelsim.models import DAEMON_ASSIST, DAEMON_AUTO, BurntOut, Destroyed, Idle, ProcessorState, Working


def format_credits(x: int) -> str:
    return f"{x:,} cr"


def _pct(x: float) -> str:
    return f"{x * 100.0:.0f}%"


def processor_snapshot(p: ProcessorState) -> Dict[str, Any]:
    """Display view of one unit: the last-tick readings plus status."""

    d: Dict[str, Any] = {
        "name": p.name,
        "status": p.status.kind,
        "speed": round(p.speed, 2),
        "quality_bias": p.quality_bias,
        "instruction_set": list(p.instruction_set),
        "reliability": round(p.reliability_display(), 4),
        "heat": round(p.last_heat, 3),
        "power_draw": round(p.last_power_draw, 3),
        "effective_cooling": p.last_effective_cooling,
        "cooling_level": p.cooling_level,
        "cooling_cap": p.cooling_cap,
        "hardening_level": p.hardening_level,
        "wear": round(p.wear, 4),
        "daemon_mode": p.daemon_mode,
        "daemon_unlocked": p.daemon_unlocked,
        "honor_cooling_mins": p.honor_cooling_mins,
        "replacement_cost": economy.replacement_cost(p),
    }
    if isinstance(p.status, Working):
        d["job"] = p.status.job.name
        d["remaining_ms"] = p.status.remaining_ms
        d["total_ms"] = p.status.total_ms
        d["overheating"] = p.status.overheating
        d["daemon_task"] = p.status.daemon_penalty is not None
    return d


def store_rows(game: Game, processor_index: Optional[int] = None) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for i, item in enumerate(game.store_items()):
        cost = game.item_cost(i, processor_index)
        rows.append(
            {
                "index": i,
                "name": item.name,
                "description": item.description,
                "cost": cost,
                "affordable": cost is not None and game.state.credits >= cost,
                "owned": game.store_purchases(i) or 0,
                "max_purchases": item.max_purchases,
            }
        )
    return rows


def _status_line(p: ProcessorState) -> str:
    status = p.status
    if isinstance(status, Idle):
        return "Idle"
    if isinstance(status, BurntOut):
        return "BURNT OUT (replace to restore)"
    if isinstance(status, Destroyed):
        return "DESTROYED (replacement required)"
    elapsed = (status.total_ms - status.remaining_ms) / 1000.0
    total = status.total_ms / 1000.0
    progress = 0 if status.total_ms <= 0 else int((status.total_ms - status.remaining_ms) * 100 / status.total_ms)
    line = f"Working on {status.job.name} {elapsed:.1f}/{total:.1f}s ({progress}%) remaining {status.remaining_ms / 1000.0:.1f}s"
    if status.overheating:
        line += " [HOT]"
    return line


def render_jobs(game: Game, app: App) -> List[str]:
    lines = ["== Job Board =="]
    if not game.state.jobs:
        lines.append("  No jobs waiting.")
        return lines
    for i, job in enumerate(game.state.jobs):
        marker = ">" if app.focus == FOCUS_JOBS and i == app.selected_job else " "
        lines.append(
            f"{marker} {job.name} | {job.base_reward} cr | {job.base_time_ms / 1000.0:.1f}s | Q{job.quality_target}"
        )
        lines.append(f"    Tag: {job.tag} | Data yield: {job.data_output} units")
    return lines


def render_processors(game: Game, app: App) -> List[str]:
    lines = ["== Processors =="]
    for i, p in enumerate(game.state.processors):
        marker = ">" if app.focus != FOCUS_JOBS and i == app.selected_processor else " "
        lines.append(f"{marker} {p.name} | speed {p.speed:.2f} | bias {p.quality_bias:+d} | mode {p.daemon_mode}")
        lines.append(f"    {_status_line(p)}")
        lines.append(
            f"    rel {_pct(p.reliability_display())} | heat {p.last_heat:.2f} | power {p.last_power_draw:.1f} "
            f"| cooling {p.last_effective_cooling}/{p.cooling_cap} | hardening {p.hardening_level}"
        )
        suggestion = game.assist_suggestion(i)
        if suggestion is not None:
            job = game.state.jobs[suggestion.job_index]
            lines.append(
                f"    Assist: {job.name} eta {suggestion.eta_secs:.1f}s rel {_pct(suggestion.reliability)} heat {suggestion.heat:.2f}"
            )
    return lines


def render_systems(game: Game, app: App) -> List[str]:
    s = game.state
    if not s.daemon_unlocked:
        daemon = f"Locked ({game.cfg.daemon_unlock_credits} cr needed)"
    else:
        auto = sum(1 for p in s.processors if p.daemon_mode == DAEMON_AUTO)
        assist = sum(1 for p in s.processors if p.daemon_mode == DAEMON_ASSIST)
        daemon = f"{auto} auto / {assist} assist"
    pending = app.pending_job.name if app.pending_job is not None else "None"
    return [
        "== Systems ==",
        f"Credits: {format_credits(s.credits)}    Upkeep/day: {game.total_upkeep()}    Electricity/day: {game.total_electricity_cost()}",
        f"Storage: {s.storage.stored}/{s.storage.capacity} (free {s.storage.free_capacity()} units)",
        f"Passive income each cycle: {economy.passive_income(s.storage.stored)} credits",
        f"Instruction tags: {', '.join(s.unlocked_tags)}",
        f"Daemon status: {daemon}" + ("    Thermal paste active" if game.thermal_paste_active() else ""),
        f"Job spawn timer: {_pct(game.job_spawn_progress())}    Day progress: {_pct(game.day_progress())}",
        f"Pending job: {pending}",
    ]


def render_store(game: Game, app: App) -> List[str]:
    lines = ["== Array Exchange ==", f"Credits: {format_credits(game.state.credits)}  (enter to purchase, s/esc to close)"]
    processor_index = app.selected_processor if game.state.processors else None
    for row in store_rows(game, processor_index):
        marker = ">" if row["index"] == app.selected_store_item else " "
        price = f"[{row['cost']} cr]" if row["cost"] is not None else "[SOLD OUT]"
        owned = ""
        if row["owned"] > 0:
            owned = f"  (owned {row['owned']}/{row['max_purchases']})" if row["max_purchases"] else f"  (owned {row['owned']})"
        elif row["max_purchases"]:
            owned = f"  (limit {row['max_purchases']})"
        lines.append(f"{marker} {row['name']}  {price}{owned}")
        lines.append(f"    {row['description']}")
    return lines


def render_log(game: Game) -> List[str]:
    lines = ["== Event Log =="]
    msgs = game.recent_messages()
    if not msgs:
        lines.append("  No events yet. Stay vigilant.")
    lines.extend(f"  {m}" for m in reversed(msgs))
    return lines


def render_screen(game: Game, app: App) -> str:
    if app.store_open:
        parts = render_store(game, app) + [""] + render_log(game)
    else:
        parts = (
            render_systems(game, app)
            + [""]
            + render_jobs(game, app)
            + [""]
            + render_processors(game, app)
            + [""]
            + render_log(game)
        )
    return "\n".join(parts)


def print_screen(game: Game, app: App) -> None:
    print("\n------------------------------")
    print(render_screen(game, app))
    print("------------------------------")
    print("j/k move | tab focus | a/enter take/assign | x cancel | s store | d mode | D cooling | r/R replace | q quit")

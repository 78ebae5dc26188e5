from __future__ import annotations

import logging
import random
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, List, Optional, Tuple

from babelsim import economy, store
from babelsim.jobs import generate_job
from babelsim.models import (
    DAEMON_ASSIST,
    DAEMON_AUTO,
    DAEMON_MODES,
    DAEMON_OFF,
    GENERAL_TAG,
    GameState,
    Job,
    ProcessorState,
    StoreItem,
)
from babelsim.processors import (
    AssignmentError,
    IncompatibleInstructionError,
    InvalidProcessorError,
    JobCompleted,
    JobEvaluation,
    ProcessorBurntOut,
    ProcessorBusyError,
    ProcessorDestroyed,
    ProcessorEvent,
    ProcessorInoperativeError,
    assign,
    evaluate_job,
    tick_processor,
)
from babelsim.store import PurchaseError

logger = logging.getLogger(__name__)

AUTO_RELIABILITY_FLOOR = 0.35
ASSIST_RELIABILITY_FLOOR = 0.30
AUTO_HEAT_CEILING = 1.8


@dataclass
class EngineConfig:
    job_spawn_interval_ms: int = 6_000
    day_duration_ms: int = 18_000
    max_jobs: int = 5
    max_messages: int = 8
    daemon_unlock_credits: int = 500
    tick_ms: int = 100


@dataclass
class AssistSuggestion:
    job_index: int
    eta_secs: float
    reliability: float
    heat: float


class WallClock:
    """Turns monotonic wall time into whole-millisecond deltas for Game.update.

    The sub-millisecond remainder stays on the clock so repeated ticks do not drift.
    """

    def __init__(self, now: Optional[float] = None) -> None:
        self.last = time.monotonic() if now is None else now

    def elapsed_ms(self, now: Optional[float] = None) -> int:
        if now is None:
            now = time.monotonic()
        ms = max(0, int((now - self.last) * 1000))
        self.last += ms / 1000.0
        return ms


class Game:
    """Owns one simulation: state, timers, the random source and the message log."""

    def __init__(
        self,
        state: Optional[GameState] = None,
        rng: Optional[random.Random] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.state = state if state is not None else GameState()
        self.rng = rng if rng is not None else random.Random()
        self.cfg = config or EngineConfig()
        self.job_spawn_timer_ms = 0
        self.day_timer_ms = 0
        self.messages: Deque[str] = deque(maxlen=self.cfg.max_messages)
        store.ensure_purchase_counters(self.state)

    @classmethod
    def fresh(cls, rng: Optional[random.Random] = None, config: Optional[EngineConfig] = None) -> "Game":
        return cls.from_state(GameState(), rng=rng, config=config)

    @classmethod
    def from_state(
        cls,
        state: GameState,
        rng: Optional[random.Random] = None,
        config: Optional[EngineConfig] = None,
    ) -> "Game":
        store.ensure_purchase_counters(state)
        state.daemon_enabled = False
        if GENERAL_TAG not in state.unlocked_tags:
            state.unlocked_tags.insert(0, GENERAL_TAG)
        for p in state.processors:
            p.ensure_runtime_defaults()
            if state.daemon_unlocked:
                p.daemon_unlocked = True
            if p.daemon_mode not in DAEMON_MODES:
                p.daemon_mode = DAEMON_OFF
            for tag in state.unlocked_tags:
                if not p.supports(tag):
                    p.instruction_set.append(tag)
        return cls(state, rng=rng, config=config)

    # --------- message log ---------

    def add_message(self, text: str) -> None:
        self.messages.append(text)
        logger.info(text)

    def recent_messages(self) -> List[str]:
        return list(self.messages)

    # --------- main loop ---------

    def update(self, delta_ms: int) -> None:
        delta_ms = max(0, int(delta_ms))

        self.job_spawn_timer_ms += delta_ms
        while self.job_spawn_timer_ms >= self.cfg.job_spawn_interval_ms:
            self.job_spawn_timer_ms -= self.cfg.job_spawn_interval_ms
            self.spawn_job_if_possible()

        self.day_timer_ms += delta_ms
        while self.day_timer_ms >= self.cfg.day_duration_ms:
            self.day_timer_ms -= self.cfg.day_duration_ms
            self.apply_daily_cycle()

        self.tick_processors(delta_ms)

        if self.state.thermal_paste_timer_ms > 0 and delta_ms > 0:
            if delta_ms >= self.state.thermal_paste_timer_ms:
                self.state.thermal_paste_timer_ms = 0
                self.add_message("Thermal paste bonus has dissipated.")
            else:
                self.state.thermal_paste_timer_ms -= delta_ms

        if not self.state.daemon_unlocked and self.state.credits >= self.cfg.daemon_unlock_credits:
            self.state.daemon_unlocked = True
            for p in self.state.processors:
                p.daemon_unlocked = True
            self.add_message("Daemon automation unlocked. Focus a processor and press D to cycle modes.")

        self.try_daemon_assignment()

    def cooling_bonus(self) -> int:
        return 1 if self.state.thermal_paste_timer_ms > 0 else 0

    def job_spawn_progress(self) -> float:
        return min(1.0, self.job_spawn_timer_ms / float(self.cfg.job_spawn_interval_ms))

    def day_progress(self) -> float:
        return min(1.0, self.day_timer_ms / float(self.cfg.day_duration_ms))

    # --------- job board ---------

    def _choose_job_tag(self) -> str:
        pool: List[str] = []
        for tag in self.state.unlocked_tags:
            if not any(p.supports(tag) for p in self.state.processors):
                continue
            weight = 4 if tag == GENERAL_TAG else 2
            pool.extend([tag] * weight)
        if not pool:
            return GENERAL_TAG
        return pool[self.rng.randrange(len(pool))]

    def spawn_job_if_possible(self) -> Optional[Job]:
        if len(self.state.jobs) >= self.cfg.max_jobs:
            return None
        self.state.job_counter += 1
        tag = self._choose_job_tag()
        job = generate_job(self.state.job_counter, tag, self.rng)
        self.state.jobs.append(job)
        self.add_message(f"New job posted: {job.name} [{tag}]")
        return job

    def take_job(self, index: int) -> Optional[Job]:
        if 0 <= index < len(self.state.jobs):
            return self.state.jobs.pop(index)
        return None

    def return_job(self, job: Job) -> None:
        if len(self.state.jobs) >= self.cfg.max_jobs:
            self.add_message("Job board full; discarded returned job.")
        else:
            self.state.jobs.insert(0, job)

    # --------- assignment ---------

    def assign_job_to_processor(self, job: Job, processor_index: int, daemon: bool = False) -> None:
        if not (0 <= processor_index < len(self.state.processors)):
            raise InvalidProcessorError()
        p = self.state.processors[processor_index]
        if not p.is_idle():
            raise ProcessorBusyError()
        if not p.supports(job.tag):
            raise IncompatibleInstructionError(job.tag)
        if not p.is_functional():
            raise ProcessorInoperativeError()

        penalty = replace(p.daemon_penalty) if daemon else None
        duration_ms = economy.assignment_duration_ms(job, p, penalty)
        assign(p, job, duration_ms, penalty)

        seconds = duration_ms / 1000.0
        if daemon:
            self.add_message(f"Daemon queued {job.name} on {p.name} ({seconds:.1f}s, automation tax)")
        else:
            self.add_message(f"Assigned {job.name} to {p.name} ({seconds:.1f}s)")

    # --------- per-tick processing ---------

    def tick_processors(self, delta_ms: int) -> None:
        if delta_ms <= 0:
            return
        bonus = self.cooling_bonus()
        events: List[Tuple[int, ProcessorEvent]] = []
        for i, p in enumerate(self.state.processors):
            ev = tick_processor(p, delta_ms, self.rng, bonus)
            if ev is not None:
                events.append((i, ev))

        for i, ev in events:
            if isinstance(ev, JobCompleted):
                self._resolve_completed_job(i, ev)
            elif isinstance(ev, ProcessorBurntOut):
                name = self.state.processors[i].name
                self.add_message(f"{name} burnt out while processing {ev.job.name}. Unit offline.")
            elif isinstance(ev, ProcessorDestroyed):
                name = self.state.processors[i].name
                self.add_message(f"{name} was destroyed during {ev.job.name}. Replacement required.")

    def _resolve_completed_job(self, processor_index: int, done: JobCompleted) -> None:
        p = self.state.processors[processor_index]
        quality = economy.roll_quality(done.job, p, done.daemon_penalty, self.rng)
        payout = economy.payout_for_quality(done.job, quality)
        self.state.credits += payout

        stored = self.state.storage.store(done.job.data_output)
        lost = done.job.data_output - stored
        if lost > 0:
            self.add_message(f"Storage overflow: {lost} data units released back into the ether.")
        self.add_message(f"{done.job.name} completed on {p.name} | quality {quality} | +{payout} cr")

    # --------- economy ---------

    def total_upkeep(self) -> int:
        return economy.upkeep_total(self.state.processors)

    def total_electricity_cost(self) -> int:
        return economy.electricity_cost(self.state.processors)

    def total_power_draw(self) -> float:
        return sum(p.last_power_draw for p in self.state.processors)

    def thermal_paste_active(self) -> bool:
        return self.state.thermal_paste_timer_ms > 0

    def apply_daily_cycle(self) -> None:
        upkeep = self.total_upkeep()
        electricity = self.total_electricity_cost()
        total = upkeep + electricity
        if total > 0:
            if self.state.credits >= total:
                self.state.credits -= total
                if electricity > 0:
                    self.add_message(f"Paid upkeep {upkeep} cr + electricity {electricity} cr (total {total}).")
                else:
                    self.add_message(f"Paid upkeep of {upkeep} credits.")
            else:
                self.state.credits = 0
                self.add_message(f"Operating costs {total} exceeded reserves; treasury depleted.")

        passive = economy.passive_income(self.state.storage.stored)
        if passive > 0:
            self.state.credits += passive
            self.add_message(f"Passive data dividend +{passive} credits.")

    # --------- automation ---------

    def select_job(
        self,
        processor: ProcessorState,
        apply_penalty: bool,
        reliability_floor: float,
    ) -> Optional[Tuple[int, int, JobEvaluation]]:
        """Best board entry for ``processor`` as (job_index, duration_ms, evaluation).

        With ``apply_penalty`` the daemon's own terms are used: duration carries
        the automation tax, hot jobs are refused when cooling minimums are
        honoured, and tag affinity plus a safety margin feed the score.
        Ties keep board order.
        """

        bonus = self.cooling_bonus()
        best: Optional[Tuple[int, int, JobEvaluation]] = None
        best_score = 0.0
        for job_index, job in enumerate(self.state.jobs):
            if not processor.supports(job.tag):
                continue
            ev = evaluate_job(processor, job, bonus)
            if ev.reliability < reliability_floor:
                continue
            if (
                processor.honor_cooling_mins
                and processor.requires_cooling_min > ev.effective_cooling
                and job.tag != GENERAL_TAG
            ):
                continue
            if apply_penalty and processor.honor_cooling_mins and ev.heat > AUTO_HEAT_CEILING:
                continue

            penalty = processor.daemon_penalty if apply_penalty else None
            duration = economy.assignment_duration_ms(job, processor, penalty)
            score = max(0.0, job.base_reward / float(duration))
            if apply_penalty:
                score += float(processor.daemon_affinity.get(job.tag, 0.0))
                score += (ev.reliability - 0.7) * 0.5

            if best is None or score > best_score:
                best = (job_index, duration, ev)
                best_score = score
        return best

    def try_daemon_assignment(self) -> None:
        if not self.state.jobs:
            return
        candidates = [
            i
            for i, p in enumerate(self.state.processors)
            if p.daemon_unlocked and p.daemon_mode == DAEMON_AUTO and p.is_idle() and p.is_functional()
        ]
        # Stable: equal (priority, speed) keep fleet order.
        candidates.sort(key=lambda i: (-self.state.processors[i].daemon_priority, -self.state.processors[i].speed))

        for i in candidates:
            if not self.state.jobs:
                break
            choice = self.select_job(self.state.processors[i], apply_penalty=True, reliability_floor=AUTO_RELIABILITY_FLOOR)
            if choice is None:
                continue
            job = self.state.jobs.pop(choice[0])
            try:
                self.assign_job_to_processor(job, i, daemon=True)
            except AssignmentError as e:
                self.state.jobs.insert(choice[0], job)
                self.add_message(f"Daemon failed assignment: {e}")
                logger.warning("daemon skipped processor %d: %s", i, e)

    def assist_suggestion(self, processor_index: int) -> Optional[AssistSuggestion]:
        if not (0 <= processor_index < len(self.state.processors)):
            return None
        p = self.state.processors[processor_index]
        if not p.daemon_unlocked or p.daemon_mode != DAEMON_ASSIST or not p.is_idle() or not p.is_functional():
            return None
        choice = self.select_job(p, apply_penalty=False, reliability_floor=ASSIST_RELIABILITY_FLOOR)
        if choice is None:
            return None
        job_index, duration_ms, ev = choice
        return AssistSuggestion(
            job_index=job_index,
            eta_secs=duration_ms / 1000.0,
            reliability=ev.reliability,
            heat=ev.heat,
        )

    def accept_assist_suggestion(self, processor_index: int) -> bool:
        if not (0 <= processor_index < len(self.state.processors)):
            self.add_message("Select a valid processor.")
            return False
        p = self.state.processors[processor_index]
        if not p.daemon_unlocked or p.daemon_mode != DAEMON_ASSIST:
            self.add_message(f"{p.name} is not running Assist automation.")
            return False
        if not p.is_functional():
            self.add_message(f"{p.name} is offline and cannot take suggestions.")
            return False
        if not p.is_idle():
            self.add_message(f"{p.name} is already working.")
            return False

        suggestion = self.assist_suggestion(processor_index)
        if suggestion is None:
            self.add_message(f"{p.name} has no suggestions ready. Queue a job manually.")
            return False

        job = self.state.jobs.pop(suggestion.job_index)
        try:
            self.assign_job_to_processor(job, processor_index, daemon=False)
        except AssignmentError as e:
            self.state.jobs.insert(min(suggestion.job_index, len(self.state.jobs)), job)
            self.add_message(f"Assist assignment failed: {e}")
            return False
        return True

    def cycle_daemon_mode(self, processor_index: int) -> None:
        if not (0 <= processor_index < len(self.state.processors)):
            self.add_message("Select a valid processor.")
            return
        p = self.state.processors[processor_index]
        if not self.state.daemon_unlocked or not p.daemon_unlocked:
            self.add_message(f"{p.name} lacks daemon firmware. Install microcode to unlock.")
            return
        if not p.is_functional():
            self.add_message(f"{p.name} is offline and cannot change automation mode.")
            return
        nxt = {DAEMON_OFF: DAEMON_ASSIST, DAEMON_ASSIST: DAEMON_AUTO, DAEMON_AUTO: DAEMON_OFF}
        p.daemon_mode = nxt.get(p.daemon_mode, DAEMON_OFF)
        self.add_message(f"{p.name} automation mode -> {p.daemon_mode.capitalize()}.")

    def toggle_honor_cooling(self, processor_index: int) -> None:
        if not (0 <= processor_index < len(self.state.processors)):
            self.add_message("Select a valid processor.")
            return
        p = self.state.processors[processor_index]
        p.honor_cooling_mins = not p.honor_cooling_mins
        verb = "will honor cooling minimums" if p.honor_cooling_mins else "will override cooling minimums"
        self.add_message(f"{p.name} {verb} when auto-assigning.")

    # --------- store ---------

    def store_items(self) -> List[StoreItem]:
        return store.STORE_ITEMS

    def store_purchases(self, index: int) -> Optional[int]:
        if 0 <= index < len(self.state.store_purchases):
            return self.state.store_purchases[index]
        return None

    def item_cost(self, index: int, processor_index: Optional[int] = None) -> Optional[int]:
        return store.item_cost(self.state, index, processor_index)

    def purchase_item(self, index: int, processor_index: Optional[int] = None) -> None:
        try:
            messages = store.purchase_item(self.state, index, processor_index)
        except PurchaseError as e:
            logger.warning("purchase of item %s failed: %s", index, e)
            raise
        for m in messages:
            self.add_message(m)

    def replace_processor_direct(self, processor_index: int) -> None:
        idx = store.store_index_for(store.REPLACE_PROCESSOR)
        if idx is None:
            raise store.InvalidItemError()
        self.purchase_item(idx, processor_index)

    def replace_model_direct(self, processor_index: int) -> None:
        idx = store.store_index_for(store.REPLACE_MODEL)
        if idx is None:
            raise store.InvalidItemError()
        self.purchase_item(idx, processor_index)

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Optional, Union

from babelsim.models import (
    ELECTRIC_COOLING_FACTOR,
    BurntOut,
    DaemonPenalty,
    Destroyed,
    Idle,
    Job,
    ProcessorState,
    Working,
)

HEAT_FAILURE_MULTIPLIER = 0.12
MAX_RELIABILITY = 0.999

# Per-tag hazard; the first three are radiation-class and respond strongly to hardening.
TAG_HAZARDS: Dict[str, float] = {
    "RADIATION": 0.02,
    "ANGEL": 0.03,
    "SURVEILLANCE": 0.01,
    "SIMD": 0.015,
}
SHIELDED_TAGS = frozenset({"RADIATION", "ANGEL", "SURVEILLANCE"})


class AssignmentError(Exception):
    pass


class InvalidProcessorError(AssignmentError):
    def __init__(self) -> None:
        super().__init__("invalid processor index")


class ProcessorBusyError(AssignmentError):
    def __init__(self) -> None:
        super().__init__("processor is busy")


class IncompatibleInstructionError(AssignmentError):
    def __init__(self, tag: str) -> None:
        super().__init__(f"processor lacks instruction {tag}")
        self.tag = tag


class ProcessorInoperativeError(AssignmentError):
    def __init__(self) -> None:
        super().__init__("processor is not operational")


@dataclass
class JobEvaluation:
    reliability: float
    heat: float
    effective_cooling: int
    hazard_penalty: float
    power_draw: float


@dataclass
class JobCompleted:
    job: Job
    daemon_penalty: Optional[DaemonPenalty] = None


@dataclass
class ProcessorBurntOut:
    job: Job


@dataclass
class ProcessorDestroyed:
    job: Job


ProcessorEvent = Union[JobCompleted, ProcessorBurntOut, ProcessorDestroyed]


def effective_cooling_level(level: int, cap: int, bonus: int) -> int:
    return min(int(level) + int(bonus), int(cap) + int(bonus))


def cooling_reduction(level: int) -> float:
    if level <= 0:
        return 0.0
    if level == 1:
        return 0.25
    if level == 2:
        return 0.45
    return 0.60 + 0.05 * (level - 3)


def cooling_reliability_bonus(level: int) -> float:
    if level <= 0:
        return 0.0
    if level <= 3:
        return 0.01 * level
    return 0.03 + 0.005 * (level - 3)


def tag_hazard(tag: str) -> float:
    return TAG_HAZARDS.get(tag, 0.0)


def hardening_multiplier(level: int, tag: str) -> float:
    if tag in SHIELDED_TAGS:
        return max(0.2, 1.0 - 0.2 * level)
    return max(0.5, 1.0 - 0.05 * level)


def load_modifier(mods: Dict[str, float], tag: str) -> float:
    return float(mods.get(tag, 0.0))


def evaluate_job(processor: ProcessorState, job: Job, cooling_bonus: int = 0) -> JobEvaluation:
    """Project heat, reliability and power draw for running ``job`` on ``processor``."""

    effective = effective_cooling_level(processor.cooling_level, processor.cooling_cap, cooling_bonus)
    load = load_modifier(processor.power_draw_mod, job.tag)
    deficit = max(0, int(processor.requires_cooling_min) - effective)
    no_cooling = processor.cooling_required and effective == 0

    heat = processor.heat_output_base * (1.0 + load)
    heat *= 1.0 - cooling_reduction(effective)
    if no_cooling:
        heat += 1.2
    heat += 0.8 * deficit

    hazard_penalty = tag_hazard(job.tag) * hardening_multiplier(processor.hardening_level, job.tag)

    reliability = processor.reliability_base
    reliability -= max(0.0, heat) * HEAT_FAILURE_MULTIPLIER
    reliability -= hazard_penalty
    reliability += cooling_reliability_bonus(effective)
    if no_cooling:
        reliability -= 0.25
    reliability -= 0.15 * deficit
    reliability -= processor.fragility * max(0.0, heat)
    reliability = max(0.0, min(MAX_RELIABILITY, reliability))

    power_draw = max(0.0, processor.power_draw_base * (1.0 + load))
    power_draw = max(0.0, power_draw * (1.0 + ELECTRIC_COOLING_FACTOR * effective))

    return JobEvaluation(
        reliability=reliability,
        heat=heat,
        effective_cooling=effective,
        hazard_penalty=hazard_penalty,
        power_draw=power_draw,
    )


def assign(processor: ProcessorState, job: Job, total_ms: int, penalty: Optional[DaemonPenalty] = None) -> None:
    processor.status = Working(job=job, remaining_ms=int(total_ms), total_ms=int(total_ms), daemon_penalty=penalty)
    processor.last_power_draw = processor.idle_power_draw()


def replace_processor(processor: ProcessorState) -> None:
    processor.status = Idle()
    processor.wear = 0.0
    processor.last_heat = 0.0
    processor.last_reliability = processor.reliability_base
    processor.last_effective_cooling = processor.cooling_level
    processor.last_power_draw = processor.idle_power_draw()


def tick_processor(
    processor: ProcessorState,
    delta_ms: int,
    rng: random.Random,
    cooling_bonus: int = 0,
) -> Optional[ProcessorEvent]:
    """Advance one unit by ``delta_ms``.

    Burnout and wear are rolled before the completion check, so a job can be
    lost on what would have been its final tick.
    """

    status = processor.status
    if isinstance(status, Idle):
        processor.last_power_draw = processor.idle_power_draw()
        return None
    if not isinstance(status, Working):
        return None

    ev = evaluate_job(processor, status.job, cooling_bonus)
    processor.last_reliability = ev.reliability
    processor.last_heat = ev.heat
    processor.last_effective_cooling = ev.effective_cooling
    processor.last_power_draw = ev.power_draw

    if ev.reliability <= 0.0 or rng.random() > ev.reliability:
        processor.status = BurntOut()
        return ProcessorBurntOut(job=status.job)

    if processor.finite_lifespan and processor.mttf_ticks > 0:
        base_wear = float(delta_ms) / float(processor.mttf_ticks)
        heat_wear = max(0.0, ev.heat) * 0.0005 * (float(delta_ms) / 1000.0)
        hazard_wear = ev.hazard_penalty * 0.05
        processor.wear += base_wear + heat_wear + hazard_wear
        if processor.wear >= 1.0:
            processor.status = Destroyed()
            return ProcessorDestroyed(job=status.job)

    if status.remaining_ms > delta_ms:
        status.remaining_ms -= int(delta_ms)
        status.overheating = ev.heat > 1.0 or processor.requires_cooling_min > ev.effective_cooling
        return None

    processor.status = Idle()
    return JobCompleted(job=status.job, daemon_penalty=status.daemon_penalty)

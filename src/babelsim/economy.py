from __future__ import annotations

import math
import random
from typing import Iterable, Optional

from babelsim.models import DaemonPenalty, Job, ProcessorState

ELECTRICITY_RATE = 4.0
PASSIVE_INCOME_RATE = 0.05


def _round(x: float) -> int:
    # Half away from zero; built-in round() is banker's rounding.
    if x < 0:
        return -int(math.floor(-x + 0.5))
    return int(math.floor(x + 0.5))


def _clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def assignment_duration_ms(job: Job, processor: ProcessorState, penalty: Optional[DaemonPenalty] = None) -> int:
    duration = float(job.base_time_ms) / max(float(processor.speed), 0.1)
    if penalty is not None:
        duration *= float(penalty.time_multiplier)
    return max(1, _round(duration))


def roll_quality(
    job: Job,
    processor: ProcessorState,
    penalty: Optional[DaemonPenalty],
    rng: random.Random,
) -> int:
    noise = rng.randint(-4, 4)
    quality = int(job.quality_target) + int(processor.quality_bias) + noise
    if penalty is not None:
        quality += int(penalty.quality)
    return int(_clamp(quality, 0, 100))


def payout_for_quality(job: Job, quality: int) -> int:
    factor = 0.7 + (float(quality) / 100.0) * 0.5
    return _round(float(job.base_reward) * factor)


def upkeep_total(processors: Iterable[ProcessorState]) -> int:
    return sum(int(p.upkeep_cost) for p in processors)


def electricity_cost(processors: Iterable[ProcessorState]) -> int:
    draw = sum(float(p.last_power_draw) for p in processors)
    return max(0, _round(draw * ELECTRICITY_RATE))


def passive_income(stored_data: int) -> int:
    if stored_data <= 0:
        return 0
    return max(1, _round(float(stored_data) * PASSIVE_INCOME_RATE))


def replacement_cost(processor: ProcessorState) -> int:
    """Service rate for swapping a dead chassis; 0 while the unit still works."""

    if processor.is_functional():
        return 0
    return max(1, _round(float(processor.purchase_cost) * float(processor.replace_cost_ratio)))

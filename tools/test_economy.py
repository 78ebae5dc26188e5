from __future__ import annotations

import math
import random

from babelsim import economy
from babelsim.jobs import generate_job
from babelsim.models import GENERAL_TAG, SIMD_TAG, BurntOut, DaemonPenalty, DataStorage, Job, ProcessorState


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


class _FixedNoise(random.Random):
    def __init__(self, noise: int) -> None:
        super().__init__(0)
        self.noise = noise

    def randint(self, a: int, b: int) -> int:
        return self.noise


def _job(reward: int = 100, time_ms: int = 5000, quality: int = 70, data: int = 20) -> Job:
    return Job(
        id=1,
        name="General Task #1",
        tag=GENERAL_TAG,
        base_time_ms=time_ms,
        base_reward=reward,
        quality_target=quality,
        data_output=data,
    )


def test_generated_jobs_stay_in_range() -> None:
    rng = random.Random(7)
    for i in range(300):
        g = generate_job(i, GENERAL_TAG, rng)
        _assert(4000 <= g.base_time_ms <= 8999, f"general time out of range: {g.base_time_ms}")
        _assert(70 <= g.base_reward <= 139, f"general reward out of range: {g.base_reward}")
        _assert(55 <= g.quality_target <= 84, f"general quality out of range: {g.quality_target}")
        _assert(12 <= g.data_output <= 31, f"general data out of range: {g.data_output}")

        s = generate_job(i, SIMD_TAG, rng)
        _assert(s.tag == SIMD_TAG, "simd job should carry its tag")
        _assert(6000 <= s.base_time_ms <= 12999, f"simd time out of range: {s.base_time_ms}")
        _assert(160 <= s.base_reward <= 259, f"simd reward out of range: {s.base_reward}")

    _assert(generate_job(1, "UNKNOWN", rng).tag == GENERAL_TAG, "unknown tags should fall back to general work")


def test_payout_bounds_for_every_quality() -> None:
    for reward in (70, 71, 73, 139, 160, 259):
        job = _job(reward=reward)
        lo = math.floor(0.7 * reward)
        hi = math.ceil(1.2 * reward)
        for q in range(0, 101):
            payout = economy.payout_for_quality(job, q)
            _assert(lo <= payout <= hi, f"payout {payout} outside [{lo}, {hi}] for reward {reward} q {q}")
    _assert(economy.payout_for_quality(_job(reward=100), 0) == 70, "quality 0 pays 70%")
    _assert(economy.payout_for_quality(_job(reward=100), 100) == 120, "quality 100 pays 120%")


def test_quality_roll_is_clamped_and_penalised() -> None:
    p = ProcessorState.starter()
    job = _job(quality=98)
    _assert(economy.roll_quality(job, p, None, _FixedNoise(4)) == 100, "quality should clamp at 100")

    low = _job(quality=2)
    _assert(economy.roll_quality(low, p, DaemonPenalty(), _FixedNoise(-4)) == 0, "quality should clamp at 0")

    mid = _job(quality=70)
    _assert(economy.roll_quality(mid, p, DaemonPenalty(), _FixedNoise(0)) == 65, "daemon penalty lowers quality by 5")


def test_duration_applies_speed_and_penalty() -> None:
    p = ProcessorState.starter()
    job = _job(time_ms=5000)
    _assert(economy.assignment_duration_ms(job, p) == 5000, "speed 1.0 keeps base time")
    _assert(economy.assignment_duration_ms(job, p, DaemonPenalty()) == 5500, "automation tax adds 10%")

    p.speed = 0.01
    _assert(economy.assignment_duration_ms(job, p) == 50000, "speed is floored at 0.1")

    tiny = _job(time_ms=0)
    _assert(economy.assignment_duration_ms(tiny, ProcessorState.starter()) == 1, "duration is at least 1 ms")


def test_daily_costs_and_passive_income() -> None:
    p = ProcessorState.starter()
    _assert(economy.upkeep_total([p]) == 8, "starter upkeep is 8")
    _assert(economy.electricity_cost([p]) == 17, "4.2 draw at rate 4.0 rounds to 17")
    _assert(economy.passive_income(0) == 0, "no stored data, no dividend")
    _assert(economy.passive_income(5) == 1, "small stores still earn at least 1")
    _assert(economy.passive_income(100) == 5, "5% of stored data")


def test_replacement_cost() -> None:
    p = ProcessorState.starter()
    _assert(economy.replacement_cost(p) == 0, "working unit has no replacement cost")
    p.status = BurntOut()
    _assert(economy.replacement_cost(p) == 63, "180 * 0.35 = 63")
    p.purchase_cost = 1
    p.replace_cost_ratio = 0.01
    _assert(economy.replacement_cost(p) == 1, "replacement never drops below 1")


def test_storage_overflow_accounting() -> None:
    st = DataStorage(capacity=120, stored=100)
    absorbed = st.store(50)
    _assert(absorbed == 20, f"only free capacity is absorbed, got {absorbed}")
    _assert(st.stored == st.capacity, "storage should be full")
    _assert(absorbed + 30 == 50, "overflow accounts for the rest")
    _assert(st.store(10) == 0, "full storage absorbs nothing")
    st.expand(80)
    _assert(st.capacity == 200 and st.free_capacity() == 80, "expansion adds free capacity")


def main() -> None:
    tests = [
        test_generated_jobs_stay_in_range,
        test_payout_bounds_for_every_quality,
        test_quality_roll_is_clamped_and_penalised,
        test_duration_applies_speed_and_penalty,
        test_daily_costs_and_passive_income,
        test_replacement_cost,
        test_storage_overflow_accounting,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()

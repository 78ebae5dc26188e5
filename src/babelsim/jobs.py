from __future__ import annotations

import random

from babelsim.models import GENERAL_TAG, SIMD_TAG, Job


def generate_general_job(job_id: int, rng: random.Random) -> Job:
    return Job(
        id=int(job_id),
        name=f"General Task #{job_id}",
        tag=GENERAL_TAG,
        base_time_ms=rng.randrange(4_000, 9_000),
        base_reward=rng.randrange(70, 140),
        quality_target=rng.randrange(55, 85),
        data_output=rng.randrange(12, 32),
    )


def generate_simd_job(job_id: int, rng: random.Random) -> Job:
    # Longer and better paid than general work; also carries a small hazard.
    return Job(
        id=int(job_id),
        name=f"SIMD Workload #{job_id}",
        tag=SIMD_TAG,
        base_time_ms=rng.randrange(6_000, 13_000),
        base_reward=rng.randrange(160, 260),
        quality_target=rng.randrange(65, 95),
        data_output=rng.randrange(36, 72),
    )


def generate_job(job_id: int, tag: str, rng: random.Random) -> Job:
    """Build a job for ``tag``; unknown tags fall back to general work."""

    if tag == SIMD_TAG:
        return generate_simd_job(job_id, rng)
    return generate_general_job(job_id, rng)

from __future__ import annotations

import random

from models.data_models import PercentileSummary
from services.percentiles import compute_percentiles
from utils.helpers import nearest_rank


def test_single_sample_fills_every_rank() -> None:
    summary = compute_percentiles([150])
    assert summary.min == summary.max == 150
    assert summary.p50 == summary.p75 == summary.p90 == summary.p95 == summary.p99 == 150
    assert summary.count == 1


def test_nearest_rank_without_interpolation() -> None:
    samples = [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]
    summary = compute_percentiles(samples)
    # index = floor(p * 10)
    assert summary.p50 == 60
    assert summary.p75 == 80
    assert summary.p95 == 100
    assert summary.p99 == 100
    assert summary.min == 10
    assert summary.max == 100


def test_even_count_median_is_upper_rank() -> None:
    summary = compute_percentiles([1.0, 2.0, 3.0, 4.0])
    assert summary.p50 == 3.0


def test_order_independent_and_idempotent() -> None:
    rng = random.Random(42)
    samples = [rng.uniform(1, 2000) for _ in range(257)]
    expected = compute_percentiles(samples)
    for _ in range(5):
        shuffled = samples[:]
        rng.shuffle(shuffled)
        assert compute_percentiles(shuffled) == expected
    assert compute_percentiles(samples) == expected


def test_input_is_not_mutated() -> None:
    samples = [5.0, 1.0, 3.0]
    compute_percentiles(samples)
    assert samples == [5.0, 1.0, 3.0]


def test_empty_sample_set_is_undefined() -> None:
    summary = compute_percentiles([])
    assert summary == PercentileSummary.undefined()
    assert not summary.is_defined
    assert summary.percentiles() == {"p50": None, "p75": None, "p90": None, "p95": None, "p99": None}


def test_rank_index_is_clamped() -> None:
    values = [1.0, 2.0, 3.0]
    assert nearest_rank(values, 1.0) == 3.0
    assert nearest_rank(values, 0.0) == 1.0

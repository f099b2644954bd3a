"""
Percentile Engine - latency distribution summary

Nearest-rank percentiles (no interpolation) so that summaries stay comparable
with the values already stored in the trend history.
"""

from typing import Iterable

from models.data_models import PERCENTILE_KEYS, PercentileSummary
from utils.helpers import nearest_rank, safe_float


def compute_percentiles(samples: Iterable[float]) -> PercentileSummary:
    """Summarize a sample set; an empty set yields the undefined summary"""
    values = sorted(v for v in (safe_float(s) for s in samples) if v is not None)
    if not values:
        return PercentileSummary.undefined()

    ranks = {key: nearest_rank(values, q) for key, q in PERCENTILE_KEYS}
    return PercentileSummary(
        min=values[0],
        p50=ranks["p50"],
        p75=ranks["p75"],
        p90=ranks["p90"],
        p95=ranks["p95"],
        p99=ranks["p99"],
        max=values[-1],
        count=len(values),
    )

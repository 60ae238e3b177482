"""
Quality Reporter
Interval-gap statistics per bucket for diagnostic display
"""

from dataclasses import replace
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Union

import pandas as pd

from .integrator import DEFAULT_MAX_GAP, annotate_readings
from .models import Bucket, BucketResult, QualityStats


def quality_percent(valid_intervals: int, total_intervals: int) -> int:
    """
    Share of intervals within the maximum gap, rounded half up

    Returns 0 when no interval was observed (no basis for assessment).
    """
    if total_intervals <= 0:
        return 0
    ratio = Decimal(100 * valid_intervals) / Decimal(total_intervals)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class QualityReporter:
    """
    Derives interval statistics per bucket from the fetched readings.

    An interval is the time between two consecutive readings of one meter and
    belongs to the bucket of the later reading. These figures are purely
    informational and never alter the energy totals.
    """

    def __init__(self, max_gap: Union[timedelta, pd.Timedelta] = DEFAULT_MAX_GAP):
        self.max_gap = pd.Timedelta(max_gap)

    def report(
        self, readings: pd.DataFrame, buckets: List[Bucket], require_power: bool = False
    ) -> Dict[int, QualityStats]:
        """
        Compute QualityStats for every bucket

        Args:
            readings: Reading frame for all meters of the query
            buckets: Planned buckets
            require_power: Count intervals lacking a power value as invalid
                (set for power-based integration)

        Returns:
            Mapping bucket ordinal -> QualityStats (every bucket present)
        """
        stats = {b.ordinal: QualityStats() for b in buckets}
        if readings.empty or not buckets:
            return stats

        frame = annotate_readings(readings, buckets, self.max_gap, require_power)
        intervals = frame[(frame["bucket_pos"] >= 0) & frame["elapsed_seconds"].notna()]
        if intervals.empty:
            return stats

        summary = intervals.groupby("bucket_pos").agg(
            total=("elapsed_seconds", "size"),
            valid=("valid", "sum"),
            avg=("elapsed_seconds", "mean"),
            min=("elapsed_seconds", "min"),
            max=("elapsed_seconds", "max"),
        )

        for pos, row in summary.iterrows():
            bucket = buckets[int(pos)]
            total = int(row["total"])
            valid = int(row["valid"])
            stats[bucket.ordinal] = QualityStats(
                total_intervals=total,
                valid_intervals=valid,
                quality_percent=quality_percent(valid, total),
                avg_interval_seconds=round(float(row["avg"]), 3),
                min_interval_seconds=float(row["min"]),
                max_interval_seconds=float(row["max"]),
            )

        return stats

    def attach(
        self, results: List[BucketResult], stats: Dict[int, QualityStats]
    ) -> List[BucketResult]:
        """Return copies of results carrying their bucket's QualityStats"""
        return [
            replace(result, quality=stats.get(result.bucket.ordinal, QualityStats()))
            for result in results
        ]

"""
Aggregator
Folds per-meter bucket deltas into consumption and supply totals per bucket
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .meter_directory import MeterDirectory, normalize_room_id, normalize_meter_id
from .models import Bucket, BucketResult, EnergyDelta

logger = logging.getLogger(__name__)


class Aggregator:
    """
    Combines EnergyDelta records across meters into BucketResults.

    Classification per meter:
    - supply meter (directory flag): added to supply_wh, regardless of any
      room filter, since the grid figure is global
    - no room filter: every other meter is consumption, including meters
      missing from the directory
    - room filter: only meters whose directory room equals the filter count
      as consumption; unmapped meters are excluded and logged

    The output always has exactly one result per planned bucket, in the
    planner's order, whether or not any meter reported in it.
    """

    def __init__(self, round_digits: Optional[int] = 3):
        self.round_digits = round_digits

    def round_value(self, value: float) -> float:
        if self.round_digits is None:
            return value
        # Normalise -0.0 after rounding
        return round(value, self.round_digits) + 0.0

    def aggregate(
        self,
        deltas: Iterable[EnergyDelta],
        directory: MeterDirectory,
        buckets: List[Bucket],
        room: Optional[str] = None,
    ) -> List[BucketResult]:
        """
        Aggregate deltas into one BucketResult per bucket

        Args:
            deltas: EnergyDelta records for all meters and buckets
            directory: Meter directory snapshot
            buckets: Full planned bucket list
            room: Optional room filter for consumption totals

        Returns:
            BucketResults in bucket order (quality left at defaults)

        Example:
            deltas: meter aabb (room 1) 60 Wh in bucket 0, supply meter 80 Wh in bucket 0
            room=None -> bucket 0: consumption 60, supply 80; buckets 1..23: 0, 0
        """
        room = normalize_room_id(room)
        consumption: Dict[int, float] = defaultdict(float)
        supply: Dict[int, float] = defaultdict(float)
        unmapped = set()

        # Sorted fold keeps float summation order independent of input order
        ordered = sorted(
            deltas, key=lambda d: (normalize_meter_id(d.meter_id), d.bucket_ordinal)
        )
        for delta in ordered:
            value = max(0.0, delta.delta_wh)
            meter = directory.get(delta.meter_id)

            if meter is not None and meter.is_supply:
                supply[delta.bucket_ordinal] += value
            elif room is None:
                consumption[delta.bucket_ordinal] += value
            elif meter is None or meter.room_id is None:
                unmapped.add(normalize_meter_id(delta.meter_id))
            elif meter.room_id == room:
                consumption[delta.bucket_ordinal] += value

        if unmapped:
            logger.warning(
                f"Excluded {len(unmapped)} unmapped meters from room {room} totals: "
                f"{', '.join(sorted(unmapped))}"
            )

        planned = {b.ordinal for b in buckets}
        stray = set(consumption) | set(supply)
        stray -= planned
        if stray:
            logger.warning(f"Ignoring deltas for unplanned bucket ordinals: {sorted(stray)}")

        return [
            BucketResult(
                bucket=bucket,
                consumption_wh=self.round_value(consumption.get(bucket.ordinal, 0.0)),
                supply_wh=self.round_value(supply.get(bucket.ordinal, 0.0)),
            )
            for bucket in buckets
        ]

"""
Energy Integrator
Converts one meter's irregular readings into per-bucket energy deltas
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional, Type, Union

import numpy as np
import pandas as pd

from .errors import InvalidStrategy
from .models import Bucket, EnergyDelta

logger = logging.getLogger(__name__)

DEFAULT_MAX_GAP = pd.Timedelta(minutes=60)


def annotate_readings(
    readings: pd.DataFrame,
    buckets: List[Bucket],
    max_gap: Union[timedelta, pd.Timedelta] = DEFAULT_MAX_GAP,
    require_power: bool = False,
) -> pd.DataFrame:
    """
    Attach bucket positions and inter-reading intervals to a reading frame

    Args:
        readings: Frame with 'meter_id', 'timestamp', 'energy', 'power'
        buckets: Planned buckets (contiguous, ascending)
        max_gap: Longest interval still treated as continuous data
        require_power: Also mark intervals invalid when either reading lacks
            a power value

    Returns:
        Copy sorted by (meter_id, timestamp) with extra columns:
        - bucket_pos: index into buckets of the bucket holding the reading,
          -1 outside the window
        - boundary_pos: index of the bucket whose end equals the timestamp
          exactly, -1 otherwise
        - elapsed_seconds: time since the meter's previous reading (NaN for
          its first reading)
        - valid: interval exists and is <= max_gap (and has power at both
          ends when require_power is set)

    Example:
        readings at 00:00, 00:30, 02:00 with max_gap 60 min:
            elapsed_seconds: NaN, 1800, 5400
            valid:           False, True, False
    """
    frame = readings.copy()
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
    frame = frame.sort_values(["meter_id", "timestamp"], kind="stable").reset_index(drop=True)

    timestamps = pd.DatetimeIndex(frame["timestamp"]).as_unit("ns")
    starts = pd.DatetimeIndex([b.start for b in buckets]).tz_convert("UTC").as_unit("ns")
    ends = pd.DatetimeIndex([b.end for b in buckets]).tz_convert("UTC").as_unit("ns")

    pos = starts.searchsorted(timestamps, side="right") - 1
    inside = (pos >= 0) & np.asarray(timestamps < ends[-1])
    frame["bucket_pos"] = np.where(inside, pos, -1)
    # ends may repeat around a DST gap; the first match is the real bucket
    end_pos = ends.searchsorted(timestamps, side="left")
    matched = np.asarray(ends[np.minimum(end_pos, len(ends) - 1)] == timestamps)
    frame["boundary_pos"] = np.where(matched, end_pos, -1)

    max_gap_seconds = pd.Timedelta(max_gap).total_seconds()
    frame["elapsed_seconds"] = (
        frame.groupby("meter_id", sort=False)["timestamp"].diff().dt.total_seconds()
    )
    frame["valid"] = frame["elapsed_seconds"].notna() & (
        frame["elapsed_seconds"] <= max_gap_seconds
    )
    if require_power:
        previous_power = frame.groupby("meter_id", sort=False)["power"].shift()
        frame["valid"] &= previous_power.notna() & frame["power"].notna()
    return frame


class IntegrationStrategy(ABC):
    """
    Interface shared by the interchangeable integration strategies.

    integrate() takes the readings of a single meter and returns exactly one
    EnergyDelta per planned bucket. A negative bucket total is clamped to 0
    and flagged as clamped; it is never propagated.
    """

    name: str = ""
    requires_power: bool = False

    def __init__(self, max_gap: Union[timedelta, pd.Timedelta] = DEFAULT_MAX_GAP):
        self.max_gap = pd.Timedelta(max_gap)

    @abstractmethod
    def _bucket_energy(self, frame: pd.DataFrame) -> pd.Series:
        """Raw energy per bucket_pos from an annotated single-meter frame"""

    def integrate(
        self,
        readings: pd.DataFrame,
        buckets: List[Bucket],
        meter_id: Optional[str] = None,
    ) -> List[EnergyDelta]:
        """
        Integrate one meter's readings into per-bucket deltas

        Args:
            readings: Frame for a single meter ('timestamp', 'energy', 'power',
                optionally 'meter_id')
            buckets: Planned buckets
            meter_id: Identifier recorded on the deltas (defaults to the frame's)

        Returns:
            One EnergyDelta per bucket, in bucket order
        """
        if meter_id is None:
            meter_id = str(readings["meter_id"].iloc[0]) if not readings.empty else ""

        if readings.empty:
            return [EnergyDelta(meter_id, b.ordinal, 0.0, 0, 0) for b in buckets]

        frame = readings.copy()
        frame["meter_id"] = meter_id
        frame = annotate_readings(frame, buckets, self.max_gap, self.requires_power)

        in_window = frame[frame["bucket_pos"] >= 0]
        intervals = in_window[in_window["elapsed_seconds"].notna()]

        energy = self._bucket_energy(frame)
        reading_counts = in_window.groupby("bucket_pos").size()
        total_intervals = intervals.groupby("bucket_pos").size()
        valid_intervals = intervals.groupby("bucket_pos")["valid"].sum()

        deltas = []
        clamped_count = 0
        for pos, bucket in enumerate(buckets):
            raw = energy.get(pos, 0.0)
            raw = 0.0 if pd.isna(raw) else float(raw)
            clamped = raw < 0
            if clamped:
                clamped_count += 1
                logger.debug(
                    f"[{bucket.label}] {meter_id}: negative delta {raw:.3f} Wh clamped to 0"
                )
            deltas.append(
                EnergyDelta(
                    meter_id=meter_id,
                    bucket_ordinal=bucket.ordinal,
                    delta_wh=0.0 if clamped else raw,
                    reading_count=int(reading_counts.get(pos, 0)),
                    valid_interval_count=int(valid_intervals.get(pos, 0)),
                    total_interval_count=int(total_intervals.get(pos, 0)),
                    clamped=clamped,
                )
            )

        if clamped_count:
            logger.warning(
                f"Clamped {clamped_count} negative bucket deltas to 0 for meter {meter_id} "
                f"({self.name} strategy, possible counter reset)"
            )

        return deltas


class CounterDeltaStrategy(IntegrationStrategy):
    """
    Energy = last cumulative counter value - first counter value of each bucket.

    A reading stamped exactly on a bucket's end closes that bucket as well as
    opening the next one, so energy delivered across a boundary is not lost.
    Buckets with no reading get 0. Power values are not needed.

    Assumes the counter does not reset inside a bucket: a reset produces a
    negative delta that is clamped to 0, losing the energy delivered before
    the reset within that bucket.
    """

    name = "delta"

    def _bucket_energy(self, frame: pd.DataFrame) -> pd.Series:
        in_window = frame[frame["bucket_pos"] >= 0]
        if in_window.empty:
            return pd.Series(dtype="float64")

        opening = in_window.groupby("bucket_pos")["energy"].first()

        closing_candidates = pd.concat(
            [
                in_window[["timestamp", "energy", "bucket_pos"]],
                frame.loc[frame["boundary_pos"] >= 0, ["timestamp", "energy", "boundary_pos"]]
                .rename(columns={"boundary_pos": "bucket_pos"}),
            ],
            ignore_index=True,
        )
        closing = (
            closing_candidates.sort_values("timestamp", kind="stable")
            .groupby("bucket_pos")["energy"]
            .last()
        )

        return (closing.reindex(opening.index) - opening).fillna(0.0)


class TrapezoidalStrategy(IntegrationStrategy):
    """
    Energy = area under the power curve, one trapezoid per reading pair.

    Each interval contributes ((p_prev + p_cur) / 2) * elapsed_hours Wh to
    the bucket holding the later reading. Intervals longer than max_gap
    contribute nothing (missing data is not extrapolated); the first reading
    of a meter contributes nothing. Intervals with a missing power value also
    contribute nothing and count as invalid.
    """

    name = "trapezoidal"
    requires_power = True

    def _bucket_energy(self, frame: pd.DataFrame) -> pd.Series:
        previous_power = frame.groupby("meter_id", sort=False)["power"].shift()
        segment_wh = (previous_power + frame["power"]) / 2 * frame["elapsed_seconds"] / 3600
        frame = frame.assign(segment_wh=segment_wh.where(frame["valid"], 0.0).fillna(0.0))

        in_window = frame[frame["bucket_pos"] >= 0]
        return in_window.groupby("bucket_pos")["segment_wh"].sum()


STRATEGIES: Dict[str, Type[IntegrationStrategy]] = {
    CounterDeltaStrategy.name: CounterDeltaStrategy,
    TrapezoidalStrategy.name: TrapezoidalStrategy,
}

_ALIASES = {
    "counter_delta": "delta",
    "counter-delta": "delta",
    "trapezoid": "trapezoidal",
}


def get_strategy(
    name: str, max_gap: Union[timedelta, pd.Timedelta] = DEFAULT_MAX_GAP
) -> IntegrationStrategy:
    """
    Instantiate an integration strategy by name

    Args:
        name: 'delta' or 'trapezoidal' (aliases: 'counter_delta', 'trapezoid')
        max_gap: Longest interval integrated as continuous data

    Raises:
        InvalidStrategy: Unknown strategy name
    """
    key = str(name).strip().lower()
    key = _ALIASES.get(key, key)
    if key not in STRATEGIES:
        raise InvalidStrategy(
            f"Unknown integration strategy '{name}'. Use one of: {', '.join(STRATEGIES)}"
        )
    return STRATEGIES[key](max_gap=max_gap)

"""
Data model for the energy aggregation engine

Readings themselves travel as pandas DataFrames with the columns listed in
READING_COLUMNS; everything derived from them is a small immutable record.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .errors import ErrorKind

# Column layout of a reading frame, sorted by (meter_id, timestamp)
READING_COLUMNS = ["meter_id", "timestamp", "energy", "power"]


def empty_readings() -> pd.DataFrame:
    """Return an empty reading frame with the canonical columns and dtypes"""
    return pd.DataFrame(
        {
            "meter_id": pd.Series([], dtype="object"),
            "timestamp": pd.Series([], dtype="datetime64[ns, UTC]"),
            "energy": pd.Series([], dtype="float64"),
            "power": pd.Series([], dtype="float64"),
        }
    )


@dataclass(frozen=True)
class Meter:
    """Directory entry for one physical meter"""

    meter_id: str
    room_id: Optional[str] = None
    is_supply: bool = False


@dataclass(frozen=True)
class Bucket:
    """One contiguous sub-interval [start, end) of the query window"""

    start: datetime
    end: datetime
    label: str
    ordinal: int


@dataclass(frozen=True)
class EnergyDelta:
    """Energy attributed to one meter within one bucket"""

    meter_id: str
    bucket_ordinal: int
    delta_wh: float
    reading_count: int
    valid_interval_count: int
    total_interval_count: int = 0
    clamped: bool = False


@dataclass(frozen=True)
class QualityStats:
    total_intervals: int = 0
    valid_intervals: int = 0
    quality_percent: int = 0
    avg_interval_seconds: float = 0.0
    min_interval_seconds: float = 0.0
    max_interval_seconds: float = 0.0


@dataclass(frozen=True)
class BucketResult:
    bucket: Bucket
    consumption_wh: float = 0.0
    supply_wh: float = 0.0
    quality: QualityStats = field(default_factory=QualityStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.bucket.label,
            "ordinal": self.bucket.ordinal,
            "start": self.bucket.start.isoformat(),
            "end": self.bucket.end.isoformat(),
            "consumption_wh": self.consumption_wh,
            "supply_wh": self.supply_wh,
            "quality": asdict(self.quality),
        }


@dataclass(frozen=True)
class EnergyReport:
    """
    Result of one engine query

    Holds exactly one BucketResult per planned bucket in ordinal order, the
    summary totals and the integration strategy that produced them. A report
    whose window held no readings is still valid: it is flagged `empty` with
    kind EMPTY_RESULT instead of being raised as an error.
    """

    period: str
    reference_date: date
    room: Optional[str]
    strategy: str
    buckets: List[BucketResult]
    total_consumption_wh: float
    total_supply_wh: float
    net_wh: float
    reading_count: int = 0
    clamped_count: int = 0
    empty: bool = False
    kind: ErrorKind = ErrorKind.OK
    message: Optional[str] = None

    def to_frame(self) -> pd.DataFrame:
        """
        Flatten bucket results into a DataFrame indexed by ordinal

        Columns: label, start, end, consumption_wh, supply_wh, quality_percent,
        total_intervals, valid_intervals
        """
        rows = [
            {
                "ordinal": result.bucket.ordinal,
                "label": result.bucket.label,
                "start": result.bucket.start,
                "end": result.bucket.end,
                "consumption_wh": result.consumption_wh,
                "supply_wh": result.supply_wh,
                "quality_percent": result.quality.quality_percent,
                "total_intervals": result.quality.total_intervals,
                "valid_intervals": result.quality.valid_intervals,
            }
            for result in self.buckets
        ]
        if not rows:
            return pd.DataFrame()
        return pd.DataFrame(rows).set_index("ordinal")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "reference_date": self.reference_date.isoformat(),
            "room": self.room,
            "strategy": self.strategy,
            "data": [result.to_dict() for result in self.buckets],
            "summary": {
                "consumption_wh": self.total_consumption_wh,
                "supply_wh": self.total_supply_wh,
                "net_wh": self.net_wh,
                "reading_count": self.reading_count,
                "clamped_count": self.clamped_count,
            },
            "empty": self.empty,
            "kind": self.kind.value,
            "message": self.message,
        }

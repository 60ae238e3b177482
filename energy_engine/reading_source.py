"""
Reading Sources
Range reads of meter readings, normalized at the ingestion boundary
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from .errors import SourceUnavailable
from .meter_directory import normalize_meter_ids
from .models import READING_COLUMNS, empty_readings

logger = logging.getLogger(__name__)

# Column names used by the upstream logger, mapped to the engine's names
COLUMN_ALIASES = {
    "mac_address": "meter_id",
    "meter_mac": "meter_id",
    "log_datetime": "timestamp",
    "_time": "timestamp",
    "time": "timestamp",
    "cumulative_energy": "energy",
    "energy_wh": "energy",
    "instantaneous_power": "power",
    "power_w": "power",
}


def to_utc(value) -> pd.Timestamp:
    """Timestamp in UTC; naive values are taken to be UTC already"""
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def prepare_readings(
    raw: pd.DataFrame,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    meter_ids: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """
    Bring a raw reading frame into the engine's canonical shape

    - renames known upstream columns (mac_address, log_datetime, ...)
    - parses timestamps as UTC and drops rows without one
    - normalizes meter ids (case-folded, separators stripped)
    - keeps [start, end) and the requested meters only
    - drops duplicate (meter_id, timestamp) rows, keeping the last
    - sorts by (meter_id, timestamp)

    Returns:
        DataFrame with columns meter_id, timestamp, energy, power
    """
    if raw is None or raw.empty:
        return empty_readings()

    df = raw.rename(columns={k: v for k, v in COLUMN_ALIASES.items() if k in raw.columns})
    for column in ("energy", "power"):
        if column not in df.columns:
            df[column] = float("nan")
    if "meter_id" not in df.columns or "timestamp" not in df.columns:
        raise ValueError(
            f"Reading frame needs meter_id and timestamp columns, got {list(raw.columns)}"
        )

    df = df[READING_COLUMNS].copy()
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    df = df.dropna(subset=["timestamp", "meter_id"])
    df["meter_id"] = normalize_meter_ids(df["meter_id"])
    df["energy"] = pd.to_numeric(df["energy"], errors="coerce")
    df["power"] = pd.to_numeric(df["power"], errors="coerce")

    if start is not None:
        df = df[df["timestamp"] >= to_utc(start)]
    if end is not None:
        df = df[df["timestamp"] < to_utc(end)]
    if meter_ids is not None:
        df = df[df["meter_id"].isin(set(meter_ids))]

    df = df.drop_duplicates(subset=["meter_id", "timestamp"], keep="last")
    return df.sort_values(["meter_id", "timestamp"]).reset_index(drop=True)


class ReadingSource(ABC):
    """Time-ordered store of readings, queried by range"""

    @abstractmethod
    def read_readings(
        self,
        start: datetime,
        end: datetime,
        meter_ids: Optional[Iterable[str]] = None,
    ) -> pd.DataFrame:
        """
        Fetch readings with start <= timestamp < end

        Args:
            start: Inclusive, timezone-aware window start
            end: Exclusive, timezone-aware window end
            meter_ids: Normalized meter ids to restrict to (None = all meters)

        Returns:
            Frame sorted by (meter_id, timestamp) with columns
            meter_id, timestamp, energy, power

        Raises:
            SourceUnavailable: If the store cannot be read
        """

    def close(self) -> None:
        pass


class FrameReadingSource(ReadingSource):
    """
    Serves readings from an in-memory DataFrame.

    Used for replays of exported logs and for tests.
    """

    def __init__(self, frame: pd.DataFrame):
        self.frame = prepare_readings(frame)

    @classmethod
    def from_csv(cls, path: str, **read_csv_kwargs) -> "FrameReadingSource":
        """
        Load readings from a CSV export

        Expected columns (upstream names accepted): meter_id/mac_address,
        timestamp/log_datetime, energy, power
        """
        csv_path = Path(path)
        if not csv_path.exists():
            raise FileNotFoundError(f"Readings file not found: {csv_path}")
        frame = pd.read_csv(csv_path, **read_csv_kwargs)
        logger.info(f"Loaded {len(frame)} readings from {csv_path}")
        return cls(frame)

    def read_readings(
        self,
        start: datetime,
        end: datetime,
        meter_ids: Optional[Iterable[str]] = None,
    ) -> pd.DataFrame:
        try:
            return prepare_readings(self.frame, start, end, meter_ids)
        except (KeyError, ValueError, TypeError) as e:
            raise SourceUnavailable(f"Reading frame could not be queried: {e}") from e


def readings_by_meter(readings: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """Split a reading frame into per-meter frames, ordered by meter id"""
    if readings.empty:
        return {}
    return {
        str(meter_id): group.reset_index(drop=True)
        for meter_id, group in readings.groupby("meter_id", sort=True)
    }

"""
Meter Directory
Immutable meter -> room snapshot with the designated grid-supply meter flagged
"""

import logging
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

import pandas as pd
import yaml

from .errors import EnergyEngineError, SourceUnavailable
from .models import Meter

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s:\-._]")


def normalize_meter_id(raw: Any) -> str:
    """
    Canonical form of a meter identifier

    Case-folds and strips separators so '08:F9:E0:73:64:DB', '08-f9-e0-73-64-db'
    and '08f9e07364db' all compare equal.
    """
    if raw is None:
        return ""
    return _SEPARATORS.sub("", str(raw).strip()).casefold()


def normalize_meter_ids(values: pd.Series) -> pd.Series:
    """Vectorised normalize_meter_id for a reading frame column"""
    return (
        values.astype(str)
        .str.strip()
        .str.replace(_SEPARATORS.pattern, "", regex=True)
        .str.casefold()
    )


def normalize_room_id(room: Any) -> Optional[str]:
    if room is None:
        return None
    if isinstance(room, float) and room.is_integer():
        room = int(room)
    room = str(room).strip()
    return room or None


class MeterDirectory:
    """
    Read-only snapshot of the meter directory for one or more queries.

    Identifiers are normalized on construction, so lookups accept any spelling
    of a meter id. At most one meter carries is_supply; the engine never
    mutates a snapshot, a refresh builds a new one.
    """

    def __init__(self, meters: Iterable[Meter], version: Optional[str] = None):
        entries: Dict[str, Meter] = {}
        for meter in meters:
            meter_id = normalize_meter_id(meter.meter_id)
            if not meter_id:
                continue
            if meter_id in entries:
                logger.warning(f"Duplicate directory entry for meter {meter_id}, keeping last")
            entries[meter_id] = Meter(
                meter_id=meter_id,
                room_id=normalize_room_id(meter.room_id),
                is_supply=bool(meter.is_supply),
            )

        supply = [m for m in entries.values() if m.is_supply]
        if len(supply) > 1:
            raise ValueError(
                "Meter directory has more than one supply meter: "
                + ", ".join(sorted(m.meter_id for m in supply))
            )
        if not supply:
            logger.warning("Meter directory has no supply meter - supply totals will be 0")

        self._meters = entries
        self._supply = supply[0] if supply else None
        self.version = version or time.strftime("%Y%m%dT%H%M%S")

    @classmethod
    def from_records(
        cls,
        records: Iterable[Dict[str, Any]],
        supply_meter_id: Optional[str] = None,
        version: Optional[str] = None,
    ) -> "MeterDirectory":
        """
        Build a directory from raw meter records

        Args:
            records: Dicts with 'meter_id' (or 'meter_mac'), optional 'room_id'
                and optional 'is_supply'
            supply_meter_id: Configured grid-supply meter; flags the matching
                record as supply regardless of its own is_supply value
            version: Optional snapshot version label
        """
        supply_key = normalize_meter_id(supply_meter_id) if supply_meter_id else None
        meters = []
        for record in records:
            raw_id = record.get("meter_id") or record.get("meter_mac")
            meter_id = normalize_meter_id(raw_id)
            if not meter_id:
                logger.warning(f"Skipping meter record without identifier: {record}")
                continue
            meters.append(
                Meter(
                    meter_id=meter_id,
                    room_id=record.get("room_id"),
                    is_supply=bool(record.get("is_supply")) or meter_id == supply_key,
                )
            )
        return cls(meters, version=version)

    def get(self, meter_id: str) -> Optional[Meter]:
        return self._meters.get(normalize_meter_id(meter_id))

    @property
    def supply_meter(self) -> Optional[Meter]:
        return self._supply

    @property
    def meters(self) -> List[Meter]:
        return [self._meters[key] for key in sorted(self._meters)]

    def meter_ids_for_room(self, room: Any) -> Set[str]:
        """Ids of consumption meters mapped to a room"""
        room = normalize_room_id(room)
        return {
            m.meter_id
            for m in self._meters.values()
            if not m.is_supply and m.room_id is not None and m.room_id == room
        }

    def rooms(self) -> List[str]:
        """Distinct room ids, numeric rooms first in numeric order"""
        room_ids = {m.room_id for m in self._meters.values() if m.room_id is not None}

        def sort_key(room_id: str):
            return (0, int(room_id), "") if room_id.isdigit() else (1, 0, room_id)

        return sorted(room_ids, key=sort_key)

    def __contains__(self, meter_id: str) -> bool:
        return normalize_meter_id(meter_id) in self._meters

    def __len__(self) -> int:
        return len(self._meters)

    def __repr__(self) -> str:
        supply = self._supply.meter_id if self._supply else None
        return f"MeterDirectory(version={self.version!r}, meters={len(self)}, supply={supply!r})"


def load_meters_from_yaml(path: str) -> List[Dict[str, Any]]:
    """
    Load meter records from a YAML file

    Expected layout:
        meters:
          - meter_id: "08:f9:e0:73:64:db"
            is_supply: true
          - meter_id: "aa:bb:cc:dd:ee:01"
            room_id: "201"
    """
    meters_file = Path(path)
    if not meters_file.exists():
        raise FileNotFoundError(f"Meters configuration file not found: {meters_file}")

    with meters_file.open() as f:
        meters_config = yaml.safe_load(f) or {}

    records = meters_config.get("meters", [])
    logger.info(f"Loaded {len(records)} meter definitions from {meters_file}")
    return records


class DirectoryProvider:
    """
    Caches a MeterDirectory snapshot and rebuilds it on a fixed interval.

    Queries call snapshot() and keep the returned object for their whole run;
    a refresh replaces the reference, it never edits a snapshot in place.
    """

    def __init__(
        self,
        loader: Callable[[], MeterDirectory],
        refresh_seconds: float = 300.0,
    ):
        self.loader = loader
        self.refresh_seconds = refresh_seconds
        self._snapshot: Optional[MeterDirectory] = None
        self._loaded_at = 0.0
        self._lock = threading.Lock()

    def snapshot(self) -> MeterDirectory:
        """
        Return the current snapshot, reloading it when stale

        Raises:
            SourceUnavailable: If the loader fails
        """
        snapshot = self._snapshot
        if snapshot is not None and time.monotonic() - self._loaded_at < self.refresh_seconds:
            return snapshot

        with self._lock:
            if self._snapshot is not None and time.monotonic() - self._loaded_at < self.refresh_seconds:
                return self._snapshot
            try:
                directory = self.loader()
            except EnergyEngineError:
                raise
            except Exception as e:
                logger.error(f"Error loading meter directory: {e}")
                raise SourceUnavailable(f"Meter directory read failed: {e}") from e

            self._snapshot = directory
            self._loaded_at = time.monotonic()
            logger.info(f"Loaded meter directory {directory!r}")
            return directory

    def invalidate(self) -> None:
        """Force a reload on the next snapshot() call"""
        with self._lock:
            self._loaded_at = 0.0

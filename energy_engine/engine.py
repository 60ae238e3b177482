"""
Energy Engine
Answers "how much energy was consumed and supplied per bucket" queries
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Iterable, List, Optional, Set, Union

import pandas as pd

from .aggregator import Aggregator
from .bucket_planner import BucketPlanner, parse_period, parse_reference_date, query_window
from .config_loader import EngineSettings
from .errors import (EnergyEngineError, ErrorKind, QueryCancelled, QueryTimeout,
                     SourceUnavailable)
from .integrator import get_strategy
from .logging_config import log_with_context
from .meter_directory import DirectoryProvider, MeterDirectory, normalize_room_id
from .models import EnergyDelta, EnergyReport, empty_readings
from .quality import QualityReporter
from .reading_source import ReadingSource, readings_by_meter

logger = logging.getLogger(__name__)

CANCEL_POLL_SECONDS = 0.1

NO_DATA_MESSAGE = "No data available for the selected criteria."
NO_ROOM_METERS_MESSAGE = "No meters found for the selected room."


class EnergyEngine:
    """
    Stateless query facade over the aggregation pipeline.

    Per query: plan buckets -> snapshot the meter directory -> range read ->
    integrate each meter -> aggregate consumption/supply -> attach quality.
    Nothing is cached between queries except the directory snapshot held by
    a DirectoryProvider, so concurrent queries need no coordination.

    Example:
        engine = EnergyEngine(source, directory)
        report = engine.query("hour", "2024-03-15", room="201")
        report.buckets[0].consumption_wh
    """

    def __init__(
        self,
        reading_source: ReadingSource,
        directory: Union[MeterDirectory, DirectoryProvider],
        settings: Optional[EngineSettings] = None,
        max_workers: int = 4,
    ):
        self.settings = settings or EngineSettings()
        self.reading_source = reading_source
        self.directory = directory

        # Fail fast on a misconfigured default strategy
        get_strategy(self.settings.default_strategy, self.settings.max_gap)

        self.planner = BucketPlanner(self.settings.timezone, self.settings.epoch_year)
        self.aggregator = Aggregator(self.settings.round_digits)
        self.quality_reporter = QualityReporter(self.settings.max_gap)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="reading-source"
        )

    def snapshot(self) -> MeterDirectory:
        """Current meter directory snapshot"""
        if isinstance(self.directory, MeterDirectory):
            return self.directory
        return self.directory.snapshot()

    def list_rooms(self) -> List[str]:
        """Rooms known to the meter directory"""
        return self.snapshot().rooms()

    def _meter_filter(self, directory: MeterDirectory, room: Optional[str]) -> Optional[Set[str]]:
        """Meters to read: all (None), or the room's meters plus the supply meter"""
        if room is None:
            return None
        meter_ids = directory.meter_ids_for_room(room)
        if directory.supply_meter is not None:
            meter_ids.add(directory.supply_meter.meter_id)
        return meter_ids

    def read_readings(
        self,
        start: datetime,
        end: datetime,
        meter_ids: Optional[Iterable[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> pd.DataFrame:
        """
        Range read bounded by the configured query timeout

        Raises:
            QueryTimeout: The read did not finish within query_timeout_seconds
            QueryCancelled: cancel_event was set before the read finished
            SourceUnavailable: The reading source failed
        """
        timeout = self.settings.query_timeout_seconds
        future = self._executor.submit(self.reading_source.read_readings, start, end, meter_ids)
        deadline = time.monotonic() + timeout

        while not future.done():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise QueryTimeout(f"Reading source did not answer within {timeout:g} s")
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                raise QueryCancelled("Query cancelled by caller")
            wait([future], timeout=min(remaining, CANCEL_POLL_SECONDS), return_when=FIRST_COMPLETED)

        try:
            return future.result()
        except EnergyEngineError:
            raise
        except TimeoutError as e:
            raise QueryTimeout(f"Reading source timed out: {e}") from e
        except Exception as e:
            logger.error(f"Reading source failed: {e}")
            raise SourceUnavailable(f"Reading source failed: {e}") from e

    def query(
        self,
        period: str = "hour",
        reference_date=None,
        room: Optional[str] = None,
        strategy: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> EnergyReport:
        """
        Compute per-bucket consumption and supply totals

        Args:
            period: 'hour', 'day', 'month' or 'year'
            reference_date: Date selecting the window (default: today)
            room: Optional room filter for consumption totals
            strategy: 'delta' or 'trapezoidal' (default from settings)
            cancel_event: Set it to abandon the range read

        Returns:
            EnergyReport with one BucketResult per planned bucket

        Raises:
            InvalidPeriod, InvalidDate, InvalidStrategy, QueryTimeout,
            QueryCancelled, SourceUnavailable
        """
        started = time.monotonic()
        period = parse_period(period)
        ref = parse_reference_date(reference_date, self.settings.timezone)
        integrator = get_strategy(strategy or self.settings.default_strategy, self.settings.max_gap)
        room = normalize_room_id(room)

        buckets = self.planner.plan(period, ref)
        directory = self.snapshot()
        meter_ids = self._meter_filter(directory, room)
        start, end = query_window(buckets)

        room_has_meters = room is None or bool(directory.meter_ids_for_room(room))
        if not room_has_meters:
            logger.info(f"Room {room} has no meters in directory {directory.version}")

        if meter_ids is not None and not meter_ids:
            readings = empty_readings()
        else:
            readings = self.read_readings(start, end, meter_ids, cancel_event)

        deltas: List[EnergyDelta] = []
        for meter_id, meter_readings in readings_by_meter(readings).items():
            deltas.extend(integrator.integrate(meter_readings, buckets, meter_id))

        results = self.aggregator.aggregate(deltas, directory, buckets, room)
        stats = self.quality_reporter.report(readings, buckets, integrator.requires_power)
        results = self.quality_reporter.attach(results, stats)

        total_consumption = self.aggregator.round_value(sum(r.consumption_wh for r in results))
        total_supply = self.aggregator.round_value(sum(r.supply_wh for r in results))

        empty = readings.empty or not room_has_meters
        if not room_has_meters:
            message = NO_ROOM_METERS_MESSAGE
        elif readings.empty:
            message = NO_DATA_MESSAGE
        else:
            message = None

        report = EnergyReport(
            period=period.value,
            reference_date=ref,
            room=room,
            strategy=integrator.name,
            buckets=results,
            total_consumption_wh=total_consumption,
            total_supply_wh=total_supply,
            net_wh=self.aggregator.round_value(total_supply - total_consumption),
            reading_count=len(readings),
            clamped_count=sum(1 for d in deltas if d.clamped),
            empty=empty,
            kind=ErrorKind.EMPTY_RESULT if empty else ErrorKind.OK,
            message=message,
        )

        log_with_context(
            logger,
            logging.INFO,
            f"Energy query {period.value} {ref} room={room or 'all'}: "
            f"{report.total_consumption_wh:.3f} Wh consumed, "
            f"{report.total_supply_wh:.3f} Wh supplied",
            period=period.value,
            reference_date=ref.isoformat(),
            room=room,
            strategy=integrator.name,
            buckets=len(results),
            readings=report.reading_count,
            clamped=report.clamped_count,
            consumption_wh=report.total_consumption_wh,
            supply_wh=report.total_supply_wh,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return report

    def close(self):
        """Stop the worker pool and close the reading source"""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.reading_source.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

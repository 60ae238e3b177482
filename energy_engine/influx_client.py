"""
InfluxDB Reading Source
Fetches meter readings from InfluxDB and writes energy reports back
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

import pandas as pd
from influxdb_client import InfluxDBClient as InfluxClient_Official
from influxdb_client import Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from .errors import SourceUnavailable
from .meter_directory import normalize_meter_id
from .models import EnergyReport
from .reading_source import ReadingSource, prepare_readings, to_utc


def _flux_time(value: datetime) -> str:
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


class InfluxReadingSource(ReadingSource):
    """
    Reading Source backed by an InfluxDB bucket.

    Each meter logs one point per sample in `measurement`, tagged with the
    meter's MAC address and carrying a cumulative energy field (Wh) and an
    instantaneous power field (W). This class provides methods to:
    - Discover meters present in the bucket
    - Fetch readings for a time range, normalized and sorted
    - Write computed bucket totals to a processed bucket
    """

    def __init__(
        self,
        url: str,
        token: str,
        org: str,
        bucket: str,
        measurement: str = "pzem",
        meter_tag: str = "mac_address",
        energy_field: str = "energy",
        power_field: str = "power",
        timeout_ms: int = 30000,
        canonical_tags: bool = False,
    ):
        """
        Initialize InfluxDB connection

        Args:
            url: InfluxDB server URL (e.g., 'http://localhost:8086')
            token: Authentication token
            org: Organization name
            bucket: Bucket holding raw meter readings
            measurement: Measurement the meter logger writes to
            meter_tag: Tag carrying the meter identifier
            energy_field: Field with the cumulative energy counter (Wh)
            power_field: Field with the instantaneous power (W)
            timeout_ms: Per-request timeout in milliseconds
            canonical_tags: Stored meter tags are already normalized ids, so a
                meter filter can be evaluated by InfluxDB
        """
        self.url = url
        self.token = token
        self.org = org
        self.bucket = bucket
        self.measurement = measurement
        self.meter_tag = meter_tag
        self.energy_field = energy_field
        self.power_field = power_field
        self.timeout_ms = timeout_ms
        self.canonical_tags = canonical_tags

        self.client = InfluxClient_Official(
            url=self.url, token=self.token, org=self.org, timeout=self.timeout_ms
        )
        self.query_api = self.client.query_api()

    def _query_frame(self, query: str) -> pd.DataFrame:
        result = self.query_api.query_data_frame(query)

        # Handle case where result is a list
        if isinstance(result, list):
            if len(result) == 0:
                return pd.DataFrame()
            result = pd.concat(result, ignore_index=True)

        return result

    def build_range_query(
        self, start: datetime, end: datetime, meter_ids: Optional[Iterable[str]] = None
    ) -> str:
        """
        Flux query returning one row per sample with energy and power columns

        meter_ids become a tag filter; they must match the stored tag values.
        """
        meter_filter = ""
        if meter_ids is not None:
            tag_set = ", ".join(f'"{m}"' for m in sorted(meter_ids))
            meter_filter = (
                f'\n        |> filter(fn: (r) => contains(value: r["{self.meter_tag}"], set: [{tag_set}]))'
            )

        return f"""
        from(bucket: "{self.bucket}")
        |> range(start: {_flux_time(start)}, stop: {_flux_time(end)})
        |> filter(fn: (r) => r["_measurement"] == "{self.measurement}"){meter_filter}
        |> filter(fn: (r) => r["_field"] == "{self.energy_field}" or r["_field"] == "{self.power_field}")
        |> pivot(rowKey: ["_time"], columnKey: ["_field"], valueColumn: "_value")
        |> keep(columns: ["_time", "{self.meter_tag}", "{self.energy_field}", "{self.power_field}"])
        """

    def read_readings(
        self,
        start: datetime,
        end: datetime,
        meter_ids: Optional[Iterable[str]] = None,
    ) -> pd.DataFrame:
        """
        Fetch readings with start <= timestamp < end

        Meter ids are normalized after the fetch, since stored tags may use any
        spelling of a MAC address; the optional meter filter is applied to the
        normalized ids. With canonical_tags the filter is also sent to InfluxDB.

        Raises:
            SourceUnavailable: If the InfluxDB query fails
        """
        wanted = [normalize_meter_id(m) for m in meter_ids] if meter_ids is not None else None
        query = self.build_range_query(start, end, wanted if self.canonical_tags else None)

        try:
            result = self._query_frame(query)
        except Exception as e:
            logging.error(f"Error fetching readings from {self.bucket}: {e}")
            raise SourceUnavailable(f"InfluxDB range query failed: {e}") from e

        if result.empty:
            logging.warning(f"No readings found in {self.bucket} between {start} and {end}")
            return prepare_readings(result)

        raw = result.rename(
            columns={
                "_time": "timestamp",
                self.meter_tag: "meter_id",
                self.energy_field: "energy",
                self.power_field: "power",
            }
        )
        readings = prepare_readings(
            raw,
            start=start,
            end=end,
            meter_ids=wanted,
        )

        logging.info(
            f"Fetched {len(readings)} readings for {readings['meter_id'].nunique()} meters "
            f"({start} to {end})"
        )
        return readings

    def discover_meters(self) -> List[str]:
        """
        Discover all meters that have logged readings

        Returns:
            Normalized meter ids sorted alphabetically
        """
        query = f"""
        import "influxdata/influxdb/schema"
        schema.tagValues(bucket: "{self.bucket}", tag: "{self.meter_tag}",
                         predicate: (r) => r["_measurement"] == "{self.measurement}")
        """

        try:
            result = self._query_frame(query)
        except Exception as e:
            logging.error(f"Error discovering meters: {e}")
            raise SourceUnavailable(f"InfluxDB meter discovery failed: {e}") from e

        if result.empty or "_value" not in result.columns:
            return []

        meter_ids = {normalize_meter_id(v) for v in result["_value"].dropna()}
        return sorted(m for m in meter_ids if m)

    def write_report(self, report: EnergyReport, bucket: str, measurement: str = "energy_report") -> int:
        """
        Write the bucket totals of a report to InfluxDB

        One point per bucket, stamped with the bucket start, tagged with
        period, room ('all' when unfiltered) and strategy.

        Args:
            report: Engine result to persist
            bucket: Target bucket (usually the processed-data bucket)
            measurement: Measurement name

        Returns:
            Number of points written

        Raises:
            SourceUnavailable: If the write fails
        """
        points = [
            Point(measurement)
            .tag("period", report.period)
            .tag("room", report.room or "all")
            .tag("strategy", report.strategy)
            .tag("label", result.bucket.label)
            .field("consumption_wh", float(result.consumption_wh))
            .field("supply_wh", float(result.supply_wh))
            .field("quality_percent", int(result.quality.quality_percent))
            .time(to_utc(result.bucket.start).to_pydatetime(), WritePrecision.S)
            for result in report.buckets
        ]

        try:
            write_api = self.client.write_api(write_options=SYNCHRONOUS)
            write_api.write(bucket=bucket, org=self.org, record=points)
        except Exception as e:
            logging.error(f"Failed to write energy report to {bucket}: {e}")
            raise SourceUnavailable(f"InfluxDB write failed: {e}") from e

        logging.debug(f"Wrote {len(points)} report points to {bucket} ({measurement})")
        return len(points)

    def close(self):
        """Close the InfluxDB client connection"""
        if hasattr(self, "client"):
            self.client.close()

    def __del__(self):
        """Cleanup: close connection when object is destroyed"""
        self.close()

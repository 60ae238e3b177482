"""
Energy Reporting Assets
Daily hour-by-hour consumption and supply reports, persisted to InfluxDB
"""

from datetime import date
from typing import Dict, Optional

import pandas as pd
from dagster import AssetExecutionContext, MaterializeResult, MetadataValue, asset

from energy_engine.engine import EnergyEngine
from energy_engine.meter_directory import MeterDirectory
from energy_engine.models import EnergyReport

from ..resources.config_resource import ConfigResource
from ..resources.influxdb_resource import InfluxDBResource

ALL_ROOMS = "all"
REPORT_MEASUREMENT = "energy_report"


def previous_day(timezone: str, now: Optional[pd.Timestamp] = None) -> date:
    """Calendar date before `now` (default: current time) in the given timezone"""
    now = now if now is not None else pd.Timestamp.now(tz=timezone)
    return (now.tz_convert(timezone).normalize() - pd.Timedelta(days=1)).date()


@asset(
    group_name="discovery",
    compute_kind="postgres",
    description="Snapshot of the meter directory (meter -> room, supply meter)",
)
def meter_directory(context: AssetExecutionContext, config: ConfigResource) -> MeterDirectory:
    """
    Load the meter directory used by the day's reports

    Returns:
        MeterDirectory snapshot from PostgreSQL, or meters.yaml as fallback
    """
    directory = config.load_directory()

    if not len(directory):
        context.log.warning("Meter directory is empty!")
    if directory.supply_meter is None:
        context.log.warning("No supply meter configured, supply totals will be 0")

    context.log.info(f"Meter directory {directory.version}: {len(directory)} meters, rooms {directory.rooms()}")
    return directory


@asset(
    group_name="processing",
    compute_kind="pandas",
    description="Yesterday's hourly energy report for the whole building and each room",
)
def daily_energy_report(
    context: AssetExecutionContext,
    meter_directory: MeterDirectory,
    influxdb: InfluxDBResource,
    config: ConfigResource,
) -> Dict[str, EnergyReport]:
    """
    Compute hourly reports for the previous day

    One report across all rooms plus one per room; the supply column is the
    same in every report.

    Returns:
        Dictionary mapping 'all' or a room id to its EnergyReport
    """
    logger = context.log
    settings = config.get_engine_settings()
    report_date = previous_day(settings.timezone)
    logger.info(f"Computing hourly energy reports for {report_date}")

    reports: Dict[str, EnergyReport] = {}
    with EnergyEngine(influxdb.get_reading_source(), meter_directory, settings) as engine:
        reports[ALL_ROOMS] = engine.query("hour", report_date)
        for room in meter_directory.rooms():
            reports[room] = engine.query("hour", report_date, room=room)

    overall = reports[ALL_ROOMS]
    if overall.empty:
        logger.warning(f"No readings for {report_date}: {overall.message}")

    context.add_output_metadata(
        {
            "report_date": MetadataValue.text(report_date.isoformat()),
            "rooms": len(reports) - 1,
            "consumption_wh": overall.total_consumption_wh,
            "supply_wh": overall.total_supply_wh,
            "clamped_deltas": overall.clamped_count,
        }
    )
    return reports


@asset(
    group_name="storage",
    compute_kind="influxdb",
    description="Write energy report buckets to the processed InfluxDB bucket",
)
def write_energy_reports_to_influxdb(
    context: AssetExecutionContext,
    daily_energy_report: Dict[str, EnergyReport],
    influxdb: InfluxDBResource,
) -> MaterializeResult:
    """
    Write every bucket of every report to InfluxDB processed bucket

    Empty reports are skipped so an outage of the meter logger leaves no
    zero rows behind.

    Returns:
        MaterializeResult with count of points written
    """
    logger = context.log
    source = influxdb.get_reading_source()

    total_points = 0
    skipped = []
    try:
        for key, report in daily_energy_report.items():
            if report.empty:
                skipped.append(key)
                continue
            written = source.write_report(report, influxdb.bucket_processed, REPORT_MEASUREMENT)
            logger.info(f"Wrote {written} points for {key}")
            total_points += written
    finally:
        source.close()

    if skipped:
        logger.warning(f"Skipped empty reports: {', '.join(skipped)}")

    logger.info(f"Total points written to InfluxDB: {total_points}")

    return MaterializeResult(
        metadata={
            "total_points": total_points,
            "reports_written": len(daily_energy_report) - len(skipped),
            "reports_skipped": len(skipped),
        }
    )

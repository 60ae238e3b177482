"""
Command-line energy report
Prints per-bucket consumption and supply for a period, date and room
"""

import argparse
import sys
from typing import List, Optional

import pandas as pd

from .config_db import load_meter_directory
from .config_loader import ConfigLoader
from .engine import EnergyEngine
from .errors import EnergyEngineError
from .influx_client import InfluxReadingSource
from .integrator import STRATEGIES
from .logging_config import setup_logging
from .meter_directory import DirectoryProvider
from .models import EnergyReport
from .reading_source import FrameReadingSource

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_ENGINE_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="energy-report",
        description="Report consumed and supplied energy per hour, day, month or year",
    )
    parser.add_argument("--period", default="hour", choices=["hour", "day", "month", "year"])
    parser.add_argument("--date", help="Reference date YYYY-MM-DD (default: today)")
    parser.add_argument("--room", help="Only count consumption of meters in this room")
    parser.add_argument(
        "--strategy", choices=sorted(STRATEGIES), help="Integration strategy (default from config)"
    )
    parser.add_argument("--config", default="config/config.yaml", help="Path to config.yaml")
    parser.add_argument("--csv", help="Replay readings from a CSV export instead of InfluxDB")
    parser.add_argument(
        "--no-database", action="store_true", help="Read meters from YAML only, skip PostgreSQL"
    )
    parser.add_argument("--quality", action="store_true", help="Show interval quality columns")
    parser.add_argument("--list-rooms", action="store_true", help="List known rooms and exit")
    return parser


def build_engine(
    loader: ConfigLoader, csv_path: Optional[str] = None, use_database: bool = True
) -> EnergyEngine:
    """
    Wire an EnergyEngine from loaded configuration

    Args:
        loader: Loaded configuration
        csv_path: Replay this CSV export instead of querying InfluxDB
        use_database: Try the PostgreSQL meter store before meters.yaml
    """
    settings = loader.get_engine_settings()
    config = loader.get_full_config()

    if csv_path:
        source = FrameReadingSource.from_csv(csv_path)
    else:
        influx = config.get("influxdb", {}) or {}
        source = InfluxReadingSource(
            url=influx.get("url", "http://localhost:8086"),
            token=config["influx_token"],
            org=config["influx_org"],
            bucket=influx.get("bucket_raw", "energy_raw"),
            measurement=influx.get("measurement", "pzem"),
            timeout_ms=int(settings.query_timeout_seconds * 1000),
            canonical_tags=bool(influx.get("canonical_tags", False)),
        )

    meters = loader.get_meters()
    provider = DirectoryProvider(
        lambda: load_meter_directory(meters, settings.supply_meter_id, use_database),
        refresh_seconds=settings.directory_refresh_seconds,
    )
    return EnergyEngine(source, provider, settings)


def format_report(report: EnergyReport, show_quality: bool = False) -> str:
    """Render a report as a text table in kWh"""
    frame = report.to_frame()
    table = pd.DataFrame(
        {
            "bucket": frame["label"],
            "consumption_kwh": (frame["consumption_wh"] / 1000).round(3),
            "supply_kwh": (frame["supply_wh"] / 1000).round(3),
        }
    )
    if show_quality:
        table["quality_%"] = frame["quality_percent"]
        table["intervals"] = frame["total_intervals"]

    header = (
        f"{report.period} report for {report.reference_date} "
        f"(room: {report.room or 'all'}, strategy: {report.strategy})"
    )
    summary = (
        f"total consumption: {report.total_consumption_wh / 1000:.3f} kWh | "
        f"total supply: {report.total_supply_wh / 1000:.3f} kWh | "
        f"net: {report.net_wh / 1000:.3f} kWh"
    )
    return "\n".join([header, table.to_string(index=False), summary])


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        loader = ConfigLoader(args.config, require_secrets=not args.csv)
    except (FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    config = loader.get_full_config()
    setup_logging(config)
    use_database = not args.no_database and (config.get("meter_store", {}) or {}).get(
        "use_database", True
    )

    try:
        engine = build_engine(loader, args.csv, use_database)
    except FileNotFoundError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    with engine:
        try:
            if args.list_rooms:
                for room in engine.list_rooms():
                    print(room)
                return EXIT_OK
            report = engine.query(
                period=args.period,
                reference_date=args.date,
                room=args.room,
                strategy=args.strategy,
            )
        except EnergyEngineError as e:
            print(f"error [{e.kind.value}]: {e.detail}", file=sys.stderr)
            return EXIT_ENGINE_ERROR

    if report.empty:
        print(report.message)
        return EXIT_OK

    print(format_report(report, show_quality=args.quality))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

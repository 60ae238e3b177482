"""
Dagster Assets for Energy Reporting
"""

from .energy_assets import (
    daily_energy_report,
    meter_directory,
    write_energy_reports_to_influxdb,
)

__all__ = [
    # Discovery
    "meter_directory",
    # Reporting
    "daily_energy_report",
    # Storage
    "write_energy_reports_to_influxdb",
]

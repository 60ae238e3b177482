"""
Dagster Jobs for Energy Reporting
"""

from dagster import AssetSelection, define_asset_job

# Energy reporting job - runs daily
energy_reporting_job = define_asset_job(
    name="energy_reporting",
    description="Compute yesterday's hourly energy reports and store them in InfluxDB",
    selection=AssetSelection.groups("discovery", "processing", "storage"),
    tags={"type": "reporting", "frequency": "daily"},
)

__all__ = ["energy_reporting_job"]

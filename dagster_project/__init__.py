"""
Dagster Project for Energy Reporting
Main repository definition
"""

import os

from dagster import Definitions

# Validate environment before importing anything else
from .utils import validate_environment

validate_environment()

# Import assets
from .assets import (daily_energy_report, meter_directory,
                     write_energy_reports_to_influxdb)
# Import jobs
from .jobs import energy_reporting_job
# Import resources
from .resources import ConfigResource, InfluxDBResource
# Import schedules
from .schedules import energy_reporting_schedule

# Define the repository
energy_repository = Definitions(
    assets=[
        # Discovery
        meter_directory,
        # Reporting
        daily_energy_report,
        # Storage
        write_energy_reports_to_influxdb,
    ],
    jobs=[energy_reporting_job],
    schedules=[energy_reporting_schedule],
    resources={
        "influxdb": InfluxDBResource(
            url=os.environ.get("INFLUX_URL", "http://localhost:8086"),
            bucket_raw="energy_raw",
            bucket_processed="energy_processed",
            measurement="pzem",
            timeout=30000,
        ),
        "config": ConfigResource(
            config_path=os.environ.get("ENERGY_CONFIG", "config/config.yaml"),
        ),
    },
)

__all__ = ["energy_repository"]

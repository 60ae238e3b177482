"""
Dagster Resources for Energy Reporting
"""

from .config_resource import ConfigResource
from .influxdb_resource import InfluxDBResource

__all__ = ["InfluxDBResource", "ConfigResource"]

"""
InfluxDB Resource for Dagster
Provides InfluxDB reading sources with configuration
"""

import os

from dagster import ConfigurableResource
from pydantic import Field

from energy_engine.influx_client import InfluxReadingSource


class InfluxDBResource(ConfigurableResource):
    """
    Resource for InfluxDB connections

    Reads raw meter samples from bucket_raw and writes energy reports to
    bucket_processed
    """

    url: str = Field(default="http://localhost:8086", description="InfluxDB server URL")

    bucket_raw: str = Field(
        default="energy_raw", description="Bucket name for raw meter readings"
    )

    bucket_processed: str = Field(
        default="energy_processed", description="Bucket name for energy reports"
    )

    measurement: str = Field(
        default="pzem", description="Measurement the meter logger writes to"
    )

    timeout: int = Field(default=30000, description="Request timeout in milliseconds")

    canonical_tags: bool = Field(
        default=False, description="Meter tags are stored as normalized ids (enables server-side meter filter)"
    )

    @property
    def token(self) -> str:
        """Get InfluxDB token from environment"""
        token = os.environ.get("INFLUX_TOKEN")
        if not token:
            raise ValueError("INFLUX_TOKEN environment variable not set")
        return token

    @property
    def org(self) -> str:
        """Get InfluxDB organization from environment"""
        org = os.environ.get("INFLUX_ORG")
        if not org:
            raise ValueError("INFLUX_ORG environment variable not set")
        return org

    def get_reading_source(self) -> InfluxReadingSource:
        """
        Create a reading source for the raw bucket

        Returns:
            Configured InfluxReadingSource instance
        """
        return InfluxReadingSource(
            url=self.url,
            token=self.token,
            org=self.org,
            bucket=self.bucket_raw,
            measurement=self.measurement,
            timeout_ms=self.timeout,
            canonical_tags=self.canonical_tags,
        )

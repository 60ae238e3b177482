"""
Configuration Resource for Dagster
Provides access to engine settings and the meter directory

The meter directory comes from PostgreSQL when available, with the YAML
meters file as a fallback.
"""

from typing import Any, Dict

from dagster import ConfigurableResource, get_dagster_logger
from pydantic import Field

from energy_engine.config_db import load_meter_directory
from energy_engine.config_loader import ConfigLoader, EngineSettings
from energy_engine.meter_directory import MeterDirectory


class ConfigResource(ConfigurableResource):
    """
    Resource for loading and accessing configuration

    Loads engine settings from config.yaml and the meter directory from the
    PostgreSQL config database (primary) or meters.yaml (fallback)
    """

    config_path: str = Field(
        default="config/config.yaml",
        description="Path to main configuration file",
    )

    use_database: bool = Field(
        default=True,
        description="Use PostgreSQL database for meters (fallback to YAML if false or unavailable)",
    )

    def _loader(self) -> ConfigLoader:
        # Secrets are checked by validate_environment and InfluxDBResource
        return ConfigLoader(self.config_path, require_secrets=False)

    def load_config(self) -> Dict[str, Any]:
        """
        Load complete configuration from YAML files

        Returns:
            Dictionary containing all configuration data
        """
        return self._loader().get_full_config()

    def get_engine_settings(self) -> EngineSettings:
        """Engine settings from the 'engine' section of config.yaml"""
        return self._loader().get_engine_settings()

    def load_directory(self) -> MeterDirectory:
        """
        Load the meter directory snapshot

        Tries PostgreSQL first if enabled, falls back to meters.yaml

        Returns:
            MeterDirectory snapshot
        """
        logger = get_dagster_logger()
        loader = self._loader()
        settings = loader.get_engine_settings()

        directory = load_meter_directory(
            loader.get_meters(),
            supply_meter_id=settings.supply_meter_id,
            use_database=self.use_database,
        )
        logger.info(f"Loaded meter directory {directory!r}")
        return directory

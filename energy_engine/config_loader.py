"""
Configuration Loader
Loads configuration from YAML files and environment variables
"""
import os
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import yaml
from dotenv import load_dotenv

from .meter_directory import load_meters_from_yaml, normalize_meter_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSettings:
    """Tunables of the aggregation engine"""

    timezone: str = "UTC"
    epoch_year: int = 2020
    max_gap_minutes: float = 60.0
    default_strategy: str = "delta"
    query_timeout_seconds: float = 30.0
    round_digits: Optional[int] = 3
    supply_meter_id: Optional[str] = None
    directory_refresh_seconds: float = 300.0

    @property
    def max_gap(self) -> pd.Timedelta:
        return pd.Timedelta(minutes=self.max_gap_minutes)

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> "EngineSettings":
        """Build settings from a config section, ignoring unknown keys"""
        values = values or {}
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            logger.warning(f"Ignoring unknown engine settings: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in values.items() if k in known})


class ConfigLoader:
    """Loads and validates configuration from YAML files and environment variables"""

    required_secrets = ["INFLUX_TOKEN", "INFLUX_ORG"]

    def __init__(self, config_path: str = "config/config.yaml", require_secrets: bool = True):
        load_dotenv()
        self.config_path = Path(config_path)
        self.config = self._load_config()
        if require_secrets:
            self._validate_secrets()

    def _load_config(self) -> Dict[str, Any]:
        """Load main configuration from YAML"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        logger.info(f"Loading configuration from {self.config_path}")
        with self.config_path.open() as f:
            config = yaml.safe_load(f) or {}

        # Meters file is resolved relative to the main config file
        meters_path = Path(config.get("meters_config", "meters.yaml"))
        if not meters_path.is_absolute():
            meters_path = self.config_path.parent / meters_path
        if meters_path.exists():
            config["meters"] = load_meters_from_yaml(str(meters_path))
        else:
            logger.warning(f"Meters configuration file not found: {meters_path}")
            config["meters"] = []

        return config

    def _validate_secrets(self):
        """Validate that required secrets are present in environment"""
        missing_secrets = [s for s in self.required_secrets if not os.environ.get(s)]

        if missing_secrets:
            raise ValueError(
                f"Missing required secrets: {', '.join(missing_secrets)}. "
                "Please set them in the environment or a .env file."
            )

        logger.info("All required secrets validated successfully")

    def get_full_config(self) -> Dict[str, Any]:
        """Get complete configuration with secrets merged"""
        full_config = dict(self.config)

        full_config["influx_token"] = os.environ.get("INFLUX_TOKEN")
        full_config["influx_org"] = os.environ.get("INFLUX_ORG")

        return full_config

    def get_engine_settings(self) -> EngineSettings:
        """Engine settings from the 'engine' section (defaults for absent keys)"""
        return EngineSettings.from_dict(self.config.get("engine"))

    def get_meters(self) -> List[Dict[str, Any]]:
        """Meter records from the YAML meters file"""
        return list(self.config.get("meters", []))

    def get_meter_config(self, meter_id: str) -> Optional[Dict[str, Any]]:
        """Get configuration for a specific meter"""
        wanted = normalize_meter_id(meter_id)
        for meter in self.config.get("meters", []):
            if normalize_meter_id(meter.get("meter_id")) == wanted:
                return meter
        return None


"""
Environment variable validation for Dagster workflows
Validates all required environment variables at startup
"""

import os
from pathlib import Path
from typing import List, Tuple

from dagster import get_dagster_logger

REQUIRED_VARS = ["INFLUX_TOKEN", "INFLUX_ORG"]

CONFIG_DB_VARS = [
    "CONFIG_DB_HOST",
    "CONFIG_DB_PORT",
    "CONFIG_DB_NAME",
    "CONFIG_DB_USER",
    "CONFIG_DB_PASSWORD",
]


def validate_environment() -> None:
    """
    Validate all required environment variables are set.

    Raises:
        ValueError: If any required environment variables are missing
    """
    # Skip validation in testing mode
    if os.environ.get("TESTING", "").lower() in ("true", "1", "yes"):
        return

    logger = get_dagster_logger()

    missing_required = get_missing_env_vars(REQUIRED_VARS)
    if missing_required:
        error_msg = (
            f"Missing required environment variables: {', '.join(missing_required)}\n"
            f"Please set these variables before starting Dagster."
        )
        logger.error(error_msg)
        raise ValueError(error_msg)

    # The meter store falls back to YAML, so a partial setup only warns
    config_db_set = [var for var in CONFIG_DB_VARS if os.environ.get(var)]
    if config_db_set and len(config_db_set) != len(CONFIG_DB_VARS):
        missing_db = get_missing_env_vars(CONFIG_DB_VARS)
        logger.warning(
            f"Partial config database settings detected. Missing: {', '.join(missing_db)}\n"
            f"Defaults will be used for those; meters fall back to YAML if it is unreachable."
        )

    config_dir = str(Path(os.environ.get("ENERGY_CONFIG", "config/config.yaml")).parent)
    files_ok, missing_files = validate_config_files(config_dir)
    if not files_ok:
        logger.warning(f"Missing configuration files: {', '.join(missing_files)}")

    logger.info("Environment variable validation completed successfully")


def get_missing_env_vars(required: List[str]) -> List[str]:
    """
    Get list of missing environment variables.

    Args:
        required: List of required environment variable names

    Returns:
        List of missing variable names
    """
    return [var for var in required if not os.environ.get(var)]


def validate_config_files(config_dir: str = "config") -> Tuple[bool, List[str]]:
    """
    Validate that required configuration files exist.

    Returns:
        Tuple of (all_present, missing_files)
    """
    required_files = [Path(config_dir) / "config.yaml", Path(config_dir) / "meters.yaml"]
    missing = [str(path) for path in required_files if not path.exists()]
    return (len(missing) == 0, missing)

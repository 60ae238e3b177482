"""
Pytest Configuration and Fixtures
Provides common test fixtures and mocks for the test suite
"""
import os

# Dagster definitions validate the environment on import
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("INFLUX_TOKEN", "test-token-123")
os.environ.setdefault("INFLUX_ORG", "test-org")

import pytest
import yaml

from energy_engine.bucket_planner import BucketPlanner
from energy_engine.config_loader import EngineSettings
from energy_engine.engine import EnergyEngine
from energy_engine.meter_directory import MeterDirectory
from energy_engine.reading_source import FrameReadingSource
from tests.fixtures.mock_data import generate_building_readings, generate_meter_records


@pytest.fixture
def meter_records():
    """Raw meter directory records"""
    return generate_meter_records()


@pytest.fixture
def directory(meter_records):
    """Meter directory snapshot with a supply meter and rooms 201/202"""
    return MeterDirectory.from_records(meter_records, version="test")


@pytest.fixture
def settings():
    """Engine settings with defaults"""
    return EngineSettings()


@pytest.fixture
def hour_buckets():
    """Hourly buckets of 2024-01-01 (UTC)"""
    return BucketPlanner().plan("hour", "2024-01-01")


@pytest.fixture
def building_readings():
    """One day of hourly readings for every meter in the directory"""
    return generate_building_readings("2024-01-01")


@pytest.fixture
def frame_source(building_readings):
    """In-memory reading source over building_readings"""
    return FrameReadingSource(building_readings)


@pytest.fixture
def engine(frame_source, directory, settings):
    """Engine over the in-memory source"""
    engine = EnergyEngine(frame_source, directory, settings)
    yield engine
    engine.close()


@pytest.fixture
def test_config():
    """Provide a test configuration dictionary"""
    return {
        "engine": {
            "timezone": "UTC",
            "epoch_year": 2021,
            "max_gap_minutes": 30,
            "default_strategy": "trapezoidal",
            "query_timeout_seconds": 5,
        },
        "influxdb": {
            "url": "http://test-influxdb:8086",
            "bucket_raw": "test_energy_raw",
            "bucket_processed": "test_energy_processed",
            "measurement": "pzem",
        },
        "meter_store": {"use_database": False},
        "logging": {"level": "INFO", "format": "json"},
    }


@pytest.fixture
def test_config_files(tmp_path, test_config, meter_records):
    """Create temporary config files for testing"""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    config_file = config_dir / "config.yaml"
    with config_file.open("w") as f:
        yaml.dump({**test_config, "meters_config": "meters.yaml"}, f)

    meters_file = config_dir / "meters.yaml"
    with meters_file.open("w") as f:
        yaml.dump({"meters": meter_records}, f)

    return {"config": config_file, "meters": meters_file, "dir": config_dir}

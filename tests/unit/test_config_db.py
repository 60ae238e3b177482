"""
Unit tests for the configuration database client
"""
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from energy_engine.config_db import ConfigDatabaseClient, load_meter_directory
from energy_engine.errors import SourceUnavailable


@pytest.fixture
def mock_cursor():
    """Cursor returned by the patched psycopg2 connection"""
    with patch("energy_engine.config_db.psycopg2.connect") as mock_connect:
        connection = MagicMock()
        cursor = MagicMock()
        connection.cursor.return_value = cursor
        mock_connect.return_value = connection
        cursor.connect = mock_connect
        cursor.connection = connection
        yield cursor


class TestConfigDatabaseClient:
    """Unit tests for ConfigDatabaseClient"""

    @pytest.mark.unit
    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("CONFIG_DB_HOST", "db.internal")
        monkeypatch.setenv("CONFIG_DB_PORT", "6543")
        monkeypatch.delenv("CONFIG_DB_NAME", raising=False)

        client = ConfigDatabaseClient()

        assert client.host == "db.internal"
        assert client.port == 6543
        assert client.dbname == "energy_config"

    @pytest.mark.unit
    def test_list_meters(self, mock_cursor):
        mock_cursor.fetchall.return_value = [
            {"meter_id": "08:f9:e0:73:64:db", "room_id": None, "is_supply": True},
            {"meter_id": "08:f9:e0:73:64:a1", "room_id": 201, "is_supply": False},
        ]

        meters = ConfigDatabaseClient().list_meters()

        assert len(meters) == 2
        query, params = mock_cursor.execute.call_args[0]
        assert "FROM meters" in query
        assert "active = %s" in query
        assert params == [True]
        mock_cursor.connection.close.assert_called_once()

    @pytest.mark.unit
    def test_list_meters_including_inactive(self, mock_cursor):
        mock_cursor.fetchall.return_value = []

        ConfigDatabaseClient().list_meters(active_only=False)

        query, params = mock_cursor.execute.call_args[0]
        assert "active" not in query
        assert params == []

    @pytest.mark.unit
    def test_list_rooms(self, mock_cursor):
        mock_cursor.fetchall.return_value = [{"room_id": 201}, {"room_id": "lobby"}]

        assert ConfigDatabaseClient().list_rooms() == ["201", "lobby"]

    @pytest.mark.unit
    def test_get_setting(self, mock_cursor):
        mock_cursor.fetchone.return_value = {"value": "08:f9:e0:73:64:db"}
        assert ConfigDatabaseClient().get_setting("supply_meter_id") == "08:f9:e0:73:64:db"

        mock_cursor.fetchone.return_value = None
        assert ConfigDatabaseClient().get_setting("missing") is None

    @pytest.mark.unit
    def test_load_directory_uses_setting_for_supply(self, mock_cursor):
        mock_cursor.fetchall.return_value = [
            {"meter_id": "08:f9:e0:73:64:db", "room_id": None, "is_supply": False},
            {"meter_id": "08:f9:e0:73:64:a1", "room_id": 201, "is_supply": False},
        ]
        mock_cursor.fetchone.return_value = {"value": "08:F9:E0:73:64:DB"}

        directory = ConfigDatabaseClient().load_directory()

        assert directory.supply_meter.meter_id == "08f9e07364db"
        assert directory.rooms() == ["201"]

    @pytest.mark.unit
    def test_driver_errors_become_source_unavailable(self):
        with patch(
            "energy_engine.config_db.psycopg2.connect",
            side_effect=psycopg2.OperationalError("could not connect"),
        ):
            with pytest.raises(SourceUnavailable, match="could not connect"):
                ConfigDatabaseClient().list_meters()

    @pytest.mark.unit
    def test_check_connection(self, mock_cursor):
        assert ConfigDatabaseClient().check_connection() is True

    @pytest.mark.unit
    def test_check_connection_failure(self):
        with patch(
            "energy_engine.config_db.psycopg2.connect",
            side_effect=psycopg2.OperationalError("refused"),
        ):
            assert ConfigDatabaseClient().check_connection() is False


class TestLoadMeterDirectory:
    """Unit tests for load_meter_directory"""

    @pytest.mark.unit
    def test_database_first(self, directory):
        db_client = MagicMock()
        db_client.check_connection.return_value = True
        db_client.load_directory.return_value = directory

        result = load_meter_directory([], supply_meter_id="aa", db_client=db_client)

        assert result is directory
        db_client.load_directory.assert_called_once_with("aa")

    @pytest.mark.unit
    def test_yaml_fallback_when_unreachable(self, meter_records):
        db_client = MagicMock()
        db_client.check_connection.return_value = False

        result = load_meter_directory(meter_records, db_client=db_client)

        assert result.version == "yaml"
        assert len(result) == 4

    @pytest.mark.unit
    def test_yaml_fallback_on_query_error(self, meter_records):
        db_client = MagicMock()
        db_client.check_connection.return_value = True
        db_client.load_directory.side_effect = SourceUnavailable("relation meters does not exist")

        result = load_meter_directory(meter_records, db_client=db_client)

        assert result.version == "yaml"

    @pytest.mark.unit
    def test_database_disabled(self, meter_records):
        db_client = MagicMock()

        result = load_meter_directory(meter_records, use_database=False, db_client=db_client)

        db_client.check_connection.assert_not_called()
        assert result.supply_meter is not None

"""
Configuration Database Client

Provides access to the PostgreSQL configuration database holding the meter
directory (meter MAC -> room, supply flag) and engine settings.
"""

import os
import logging
from typing import Any, Dict, List, Optional
from contextlib import contextmanager

import psycopg2
from psycopg2.extras import RealDictCursor

from .errors import SourceUnavailable
from .meter_directory import MeterDirectory

logger = logging.getLogger(__name__)


class ConfigDatabaseClient:
    """Client for accessing the configuration database"""

    def __init__(
        self,
        host: str = None,
        port: int = None,
        dbname: str = None,
        user: str = None,
        password: str = None,
        connect_timeout: int = 10,
    ):
        """
        Initialize the configuration database client

        Args:
            host: Database host (defaults to CONFIG_DB_HOST env var or 'localhost')
            port: Database port (defaults to CONFIG_DB_PORT env var or 5432)
            dbname: Database name (defaults to CONFIG_DB_NAME env var or 'energy_config')
            user: Database user (defaults to CONFIG_DB_USER env var or 'energy')
            password: Database password (defaults to CONFIG_DB_PASSWORD env var or 'energy')
            connect_timeout: Connection timeout in seconds
        """
        self.host = host or os.environ.get("CONFIG_DB_HOST", "localhost")
        self.port = port or int(os.environ.get("CONFIG_DB_PORT", "5432"))
        self.dbname = dbname or os.environ.get("CONFIG_DB_NAME", "energy_config")
        self.user = user or os.environ.get("CONFIG_DB_USER", "energy")
        self.password = password or os.environ.get("CONFIG_DB_PASSWORD", "energy")
        self.connect_timeout = connect_timeout

    @contextmanager
    def get_connection(self):
        """Context manager for database connections"""
        conn = None
        try:
            conn = psycopg2.connect(
                host=self.host,
                port=self.port,
                dbname=self.dbname,
                user=self.user,
                password=self.password,
                connect_timeout=self.connect_timeout,
                cursor_factory=RealDictCursor,
            )
            yield conn
        except psycopg2.Error as e:
            logger.error(f"Config database error: {e}")
            raise SourceUnavailable(f"Config database unavailable: {e}") from e
        finally:
            if conn:
                conn.close()

    def list_meters(self, active_only: bool = True) -> List[Dict[str, Any]]:
        """
        Get meter directory records

        Args:
            active_only: If True, only return active meters (default: True)

        Returns:
            List of dicts with meter_id, room_id and is_supply
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()

            query = "SELECT meter_mac AS meter_id, room_id, is_supply FROM meters WHERE 1=1"
            params = []

            if active_only:
                query += " AND active = %s"
                params.append(True)

            query += " ORDER BY meter_mac"

            cursor.execute(query, params)
            meters = cursor.fetchall()

            return [dict(meter) for meter in meters]

    def list_rooms(self) -> List[str]:
        """
        Get distinct room ids of active meters

        Returns:
            Room ids as strings, in database order
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT DISTINCT room_id FROM meters "
                "WHERE room_id IS NOT NULL AND active = true ORDER BY room_id"
            )
            return [str(row["room_id"]) for row in cursor.fetchall()]

    def get_setting(self, key: str) -> Optional[Any]:
        """
        Get a specific setting value

        Args:
            key: Setting key

        Returns:
            Setting value or None if not found
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM settings WHERE key = %s", (key,))
            result = cursor.fetchone()
            return result["value"] if result else None

    def load_directory(self, supply_meter_id: Optional[str] = None) -> MeterDirectory:
        """
        Build a MeterDirectory snapshot from the meters table

        Args:
            supply_meter_id: Configured supply meter, used when no row is flagged

        Returns:
            MeterDirectory snapshot
        """
        records = self.list_meters()
        if supply_meter_id is None:
            supply_meter_id = self.get_setting("supply_meter_id")
        logger.info(f"Loaded {len(records)} meters from config database")
        return MeterDirectory.from_records(records, supply_meter_id=supply_meter_id)

    def check_connection(self) -> bool:
        """
        Check if the database connection is working

        Returns:
            True if connection successful, False otherwise
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT 1")
                return True
        except SourceUnavailable as e:
            logger.error(f"Database connection check failed: {e}")
            return False


def load_meter_directory(
    yaml_records: List[Dict[str, Any]],
    supply_meter_id: Optional[str] = None,
    use_database: bool = True,
    db_client: Optional[ConfigDatabaseClient] = None,
) -> MeterDirectory:
    """
    Load the meter directory from PostgreSQL, falling back to YAML records

    Args:
        yaml_records: Meter records from meters.yaml (fallback)
        supply_meter_id: Configured grid-supply meter id
        use_database: Try the config database first
        db_client: Client to use (default: one built from CONFIG_DB_* env vars)

    Returns:
        MeterDirectory snapshot
    """
    if use_database:
        client = db_client or ConfigDatabaseClient()
        if client.check_connection():
            try:
                return client.load_directory(supply_meter_id)
            except SourceUnavailable as e:
                logger.warning(f"Failed to load meters from database: {e}, falling back to YAML")
        else:
            logger.warning("Config database connection failed, falling back to YAML")

    logger.info(f"Loading meter directory from {len(yaml_records)} YAML records")
    return MeterDirectory.from_records(yaml_records, supply_meter_id=supply_meter_id, version="yaml")

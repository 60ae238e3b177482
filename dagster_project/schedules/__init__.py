"""
Dagster Schedules for Energy Reporting
"""

from dagster import DefaultScheduleStatus, ScheduleDefinition

from ..jobs import energy_reporting_job

# Daily at 01:15 UTC, after the logger has flushed the previous day
energy_reporting_schedule = ScheduleDefinition(
    name="energy_reporting_daily",
    job=energy_reporting_job,
    cron_schedule="15 1 * * *",
    execution_timezone="UTC",
    default_status=DefaultScheduleStatus.RUNNING,
)

__all__ = ["energy_reporting_schedule"]

"""
Bucket Planner
Computes the calendar buckets of a query window, independent of stored data
"""

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple, Union

import pandas as pd

from .errors import InvalidDate, InvalidPeriod
from .models import Bucket

logger = logging.getLogger(__name__)

DEFAULT_EPOCH_YEAR = 2020

DateLike = Union[str, date, datetime, pd.Timestamp, None]


class Period(str, Enum):
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


def parse_period(value) -> Period:
    """
    Resolve a period name to a Period

    Raises:
        InvalidPeriod: If value is not one of hour, day, month, year
    """
    if isinstance(value, Period):
        return value
    try:
        return Period(str(value).strip().lower())
    except ValueError:
        raise InvalidPeriod(
            f"Unknown period '{value}'. Use one of: "
            + ", ".join(p.value for p in Period)
        ) from None


def parse_reference_date(value: DateLike, timezone: str = "UTC") -> date:
    """
    Resolve the reference date of a query

    Accepts a date, a datetime, or any string pandas can parse
    (e.g. '2024-03-15'). None means today in the given timezone.

    Raises:
        InvalidDate: If the value cannot be parsed as a calendar date
    """
    if value is None:
        return pd.Timestamp.now(tz=timezone).date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    try:
        parsed = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError) as e:
        raise InvalidDate(f"Invalid date '{value}'. Use YYYY-MM-DD. ({e})") from None

    if pd.isna(parsed):
        raise InvalidDate(f"Invalid date '{value}'. Use YYYY-MM-DD.")
    return parsed.date()


class BucketPlanner:
    """
    Plans the ordered bucket sequence for a period and reference date.

    - hour:  24 buckets of the reference day, ordinal = hour of day, label 'HH:00'
    - day:   one bucket per day of the reference month, ordinal = day of month,
             label 'Mon DD'
    - month: 12 buckets of the reference year, ordinal = month, label = month name
    - year:  one bucket per year from epoch_year through the reference year,
             ordinal = label = year

    Buckets are contiguous and half-open [start, end); the query window is
    [first.start, last.end). Hour buckets follow the local wall clock, so on a
    DST change day the skipped hour is an empty bucket and the repeated hour
    spans two hours.
    """

    def __init__(self, timezone: str = "UTC", epoch_year: int = DEFAULT_EPOCH_YEAR):
        self.timezone = timezone
        self.epoch_year = epoch_year

    def _wall_clock(self, year: int, month: int = 1, day: int = 1, hour: int = 0) -> pd.Timestamp:
        # Hours skipped by a DST jump collapse onto the next valid instant;
        # repeated hours resolve to their first (summer time) occurrence
        return pd.Timestamp(datetime(year, month, day, hour)).tz_localize(
            self.timezone, ambiguous=True, nonexistent="shift_forward"
        )

    def _midnight(self, year: int, month: int = 1, day: int = 1) -> pd.Timestamp:
        return self._wall_clock(year, month, day)

    def plan(self, period, reference_date: DateLike = None) -> List[Bucket]:
        """
        Compute buckets for a query

        Args:
            period: 'hour', 'day', 'month' or 'year'
            reference_date: Calendar date selecting the day/month/year shown

        Returns:
            Buckets in strictly increasing ordinal order

        Raises:
            InvalidPeriod: Unknown period
            InvalidDate: Unparseable date, or a year query before the epoch year
        """
        period = parse_period(period)
        ref = parse_reference_date(reference_date, self.timezone)

        if period is Period.HOUR:
            buckets = self._hour_buckets(ref)
        elif period is Period.DAY:
            buckets = self._day_buckets(ref)
        elif period is Period.MONTH:
            buckets = self._month_buckets(ref)
        else:
            buckets = self._year_buckets(ref)

        logger.debug(
            f"Planned {len(buckets)} {period.value} buckets for {ref} "
            f"({buckets[0].start} to {buckets[-1].end})"
        )
        return buckets

    def _hour_buckets(self, ref: date) -> List[Bucket]:
        next_day = ref + timedelta(days=1)
        starts = [self._wall_clock(ref.year, ref.month, ref.day, hour) for hour in range(24)]
        starts.append(self._midnight(next_day.year, next_day.month, next_day.day))
        buckets = []
        for hour in range(24):
            start = starts[hour]
            buckets.append(
                Bucket(
                    start=start,
                    end=starts[hour + 1],
                    label=f"{hour:02d}:00",
                    ordinal=hour,
                )
            )
        return buckets

    def _day_buckets(self, ref: date) -> List[Bucket]:
        month_start = self._midnight(ref.year, ref.month)
        buckets = []
        for day in range(1, month_start.days_in_month + 1):
            start = self._midnight(ref.year, ref.month, day)
            end = (
                self._midnight(ref.year, ref.month, day + 1)
                if day < month_start.days_in_month
                else self._next_month(ref.year, ref.month)
            )
            buckets.append(
                Bucket(start=start, end=end, label=start.strftime("%b %d"), ordinal=day)
            )
        return buckets

    def _month_buckets(self, ref: date) -> List[Bucket]:
        buckets = []
        for month in range(1, 13):
            start = self._midnight(ref.year, month)
            buckets.append(
                Bucket(
                    start=start,
                    end=self._next_month(ref.year, month),
                    label=start.strftime("%B"),
                    ordinal=month,
                )
            )
        return buckets

    def _year_buckets(self, ref: date) -> List[Bucket]:
        if ref.year < self.epoch_year:
            raise InvalidDate(
                f"Year {ref.year} precedes the earliest retained year {self.epoch_year}"
            )
        return [
            Bucket(
                start=self._midnight(year),
                end=self._midnight(year + 1),
                label=str(year),
                ordinal=year,
            )
            for year in range(self.epoch_year, ref.year + 1)
        ]

    def _next_month(self, year: int, month: int) -> pd.Timestamp:
        if month == 12:
            return self._midnight(year + 1)
        return self._midnight(year, month + 1)


def query_window(buckets: List[Bucket]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Return the [start, end) window covered by a bucket sequence"""
    if not buckets:
        return None, None
    return buckets[0].start, buckets[-1].end

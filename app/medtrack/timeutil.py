"""Conversions between stored timestamps and the naive local wall-clock values
the engine compares. Nothing in the engine itself attaches a timezone.
"""

from datetime import date, datetime, time, tzinfo
from typing import Optional, Union

from dateutil import parser as dtparser
from dateutil import tz as dateutil_tz


def local_zone(name: Optional[str] = None) -> tzinfo:
    if name:
        zone = dateutil_tz.gettz(name)
        if zone is None:
            raise ValueError(f"unknown timezone: {name}")
        return zone
    return dateutil_tz.tzlocal()


def to_local_naive(dt: datetime, zone: Optional[tzinfo] = None) -> datetime:
    # naive input is already wall-clock local
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(zone or local_zone()).replace(tzinfo=None)


def parse_timestamp(
    value: Union[str, datetime], zone: Optional[tzinfo] = None
) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = dtparser.isoparse(value)
    return to_local_naive(dt, zone)


def parse_date(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return dtparser.isoparse(value).date()


def parse_time(value: Union[str, time]) -> time:
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    # "08:00" and "08:00:00" both occur in stored rules
    return time.fromisoformat(value).replace(microsecond=0, tzinfo=None)

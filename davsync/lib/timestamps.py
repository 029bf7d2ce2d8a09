#!/usr/bin/env python
"""
Date, date-time and duration values as they appear on the wire.

CalDAV time-range attributes must be "date with UTC time" (RFC 4791,
section 9.9), while the iCalendar properties returned by servers come in
three literal shapes: a bare date, a floating local date-time and a UTC
date-time.  Anything else is handed over to dateutil.
"""
import logging
import re
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Optional
from typing import Tuple
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

from dateutil import parser as dateparser

log = logging.getLogger(__name__)

utc_tz = timezone.utc

DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DURATION_RE = re.compile(
    r"^\+?P(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def format_timestamp(ts: datetime) -> str:
    """coerce a datetime to UTC (assume localtime if nothing is given)
    and render it as YYYYMMDDTHHMMSSZ"""
    ## in python 3.6 and higher, ts.astimezone() will assume a
    ## naive timestamp is localtime (and so do we)
    return ts.astimezone(utc_tz).strftime("%Y%m%dT%H%M%SZ")


def _localize(ts: datetime, tzid: Optional[str] = None) -> datetime:
    if tzid:
        try:
            return ts.replace(tzinfo=ZoneInfo(tzid.strip('"').lstrip("/")))
        ## a TZID naming a zoneinfo directory (TZID=America) raises IsADirectoryError
        except (ZoneInfoNotFoundError, ValueError, OSError):
            log.debug("unknown TZID %s, treating %s as local time", tzid, ts)
    return ts.astimezone()


def parse_date_value(
    value: Optional[str],
    value_type: Optional[str] = None,
    tzid: Optional[str] = None,
) -> Tuple[Optional[datetime], bool]:
    """
    Decode an iCalendar DATE or DATE-TIME value.

    Args:
        value: the raw property value, i.e. ``20260114T090000Z``
        value_type: the VALUE parameter of the property, if any
        tzid: the TZID parameter of the property, if any

    Returns:
        Tuple of (timezone-aware datetime or None, is_all_day).  Bare
        dates and floating times are taken as local time.
    """
    is_all_day = (value_type or "").upper() == "DATE"
    value = (value or "").strip()
    if not value:
        return None, is_all_day

    m = DATE_RE.match(value)
    if m:
        try:
            day = datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None, True
        return day.astimezone(), True

    m = DATETIME_RE.match(value)
    if m:
        try:
            ts = datetime(*(int(x) for x in m.groups()[:6]))
        except ValueError:
            return None, is_all_day
        if m.group(7):
            return ts.replace(tzinfo=utc_tz), is_all_day
        return _localize(ts, tzid), is_all_day

    try:
        ts = dateparser.parse(value)
    except (ValueError, OverflowError):
        log.debug("could not parse date value %r", value)
        return None, is_all_day
    if ISO_DATE_RE.match(value):
        is_all_day = True
    if ts.tzinfo is None:
        ts = _localize(ts, tzid)
    return ts, is_all_day


def add_duration(start: datetime, duration: Optional[str]) -> datetime:
    """
    Add an iCalendar DURATION like ``PT1H30M`` or ``P1D`` to start.

    Only weeks, days, hours, minutes and seconds are understood.  If the
    text doesn't match, start is returned unchanged.
    """
    m = DURATION_RE.match((duration or "").strip().upper())
    if not m:
        return start
    parts = {k: int(v) for k, v in m.groupdict().items() if v}
    return start + timedelta(**parts)

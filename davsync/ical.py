#!/usr/bin/env python
"""
Schema-less VEVENT extraction from calendar-data.

Servers return anything from tidy RFC 5545 to hand-rolled iCalendar, so
this module does not try to build a full object model.  It unfolds the
content lines, cuts out the VEVENT blocks and picks the handful of
properties the local cache needs: UID, SUMMARY, DTSTART, DTEND and
DURATION.  Everything else is ignored.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from icalendar.parser import Contentline
from icalendar.prop import vText

from davsync.lib.timestamps import add_duration
from davsync.lib.timestamps import format_timestamp
from davsync.lib.timestamps import parse_date_value

log = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Untitled Event"

_FOLD_RE = re.compile(r"\n[ \t]")


@dataclass
class ParsedEvent:
    """One decoded VEVENT.  start < end always holds."""

    uid: str
    summary: str
    start: datetime
    end: datetime
    is_all_day: bool = False

    @property
    def key(self) -> Tuple[str, datetime]:
        """Identity used to drop duplicates within one sync run"""
        return (self.uid, self.start)


def unfold(text: str) -> str:
    """
    Join folded content lines (RFC 5545, section 3.1).  A line break
    followed by a single space or tab is removed; line endings are
    normalized to ``\\n``.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _FOLD_RE.sub("", text)


def split_events(text: str) -> List[str]:
    """
    Cut the bodies of all VEVENT blocks out of some calendar-data.

    The BEGIN/END lines are not part of the returned bodies, neither are
    sub-components like VALARM.  An event without END:VEVENT is dropped.
    """
    events: List[str] = []
    current: Optional[List[str]] = None
    nested = 0

    for line in text.split("\n"):
        marker = line.strip().upper()
        if marker == "BEGIN:VEVENT":
            if current is not None:
                log.debug("VEVENT without END:VEVENT dropped")
            current = []
            nested = 0
            continue
        if current is None:
            continue
        if marker == "END:VEVENT" and not nested:
            events.append("\n".join(current))
            current = None
        elif marker.startswith("BEGIN:"):
            nested += 1
        elif marker.startswith("END:") and nested:
            nested -= 1
        elif not nested:
            current.append(line)

    if current is not None:
        log.debug("trailing VEVENT fragment without END:VEVENT dropped")
    return events


def _content_line(line: str) -> Optional[Tuple[str, Dict[str, str], str]]:
    """
    name;param=value;...:value -> (NAME, {PARAM: value}, value), or None
    if the line can't be read.  Parameter values given as a list are
    reduced to the first element.
    """
    if ":" not in line:
        return None
    try:
        name, params, value = Contentline(line.strip()).parts()
    ## a colon only inside a quoted parameter value gives TypeError
    except (ValueError, TypeError):
        return None
    flat = {}
    for pname, pvalue in params.items():
        if isinstance(pvalue, list):
            pvalue = pvalue[0] if pvalue else ""
        flat[pname.upper()] = str(pvalue)
    return name.upper(), flat, value


def parse_event(body: str) -> Optional[ParsedEvent]:
    """
    Decode the body of one VEVENT.

    Returns None if the event has no usable DTSTART.  A missing end is
    filled in from DURATION, or else set one day (all-day events) or one
    hour after the start.  Events without UID get an identifier derived
    from their start.
    """
    uid: Optional[str] = None
    summary: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration: Optional[str] = None
    is_all_day = False

    for line in unfold(body).split("\n"):
        parts = _content_line(line)
        if parts is None:
            if line.strip():
                log.debug("unreadable content line %r skipped", line)
            continue
        name, params, value = parts
        if name == "SUMMARY":
            summary = str(vText.from_ical(value)).strip()
        elif name == "UID":
            uid = value.strip()
        elif name in ("DTSTART", "DTEND"):
            ts, all_day = parse_date_value(value, params.get("VALUE"), params.get("TZID"))
            if ts is None:
                log.debug("unparseable %s %r", name, value)
                continue
            ## once all-day, always all-day
            is_all_day = is_all_day or all_day
            if name == "DTSTART":
                start = ts
            else:
                end = ts
        elif name == "DURATION":
            duration = value.strip()

    if start is None:
        log.debug("VEVENT without DTSTART dropped (UID %s)", uid)
        return None

    if end is None and duration:
        end = add_duration(start, duration)
    if end is not None and end <= start:
        end = None
    if end is None:
        end = start + (timedelta(days=1) if is_all_day else timedelta(hours=1))

    if not uid:
        uid = "nouid-%s" % format_timestamp(start)

    return ParsedEvent(
        uid=uid,
        summary=summary or DEFAULT_SUMMARY,
        start=start,
        end=end,
        is_all_day=is_all_day,
    )


def parse_events(text: str) -> List[ParsedEvent]:
    """All usable events in a calendar-data blob, in document order"""
    events = []
    for body in split_events(unfold(text)):
        event = parse_event(body)
        if event is not None:
            events.append(event)
    return events

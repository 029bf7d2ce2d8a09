"""
Pure functions building the two request bodies the sync engine sends.
"""
from datetime import datetime
from typing import Dict
from typing import List
from typing import Type

from . import elements

## properties a PROPFIND may ask for, by name
PROPERTIES: Dict[str, Type[elements.BaseElement]] = {
    "resourcetype": elements.ResourceType,
    "displayname": elements.DisplayName,
    "getetag": elements.GetEtag,
}


def build_propfind_body(props: List[str]) -> bytes:
    """
    PROPFIND body asking for the named properties.  Unknown names are
    skipped.
    """
    prop = elements.Prop() + [
        PROPERTIES[name.lower()]() for name in props if name.lower() in PROPERTIES
    ]
    return (elements.Propfind() + prop).to_xml()


def build_calendar_query_body(start: datetime, end: datetime) -> bytes:
    """
    calendar-query body for the VEVENTs intersecting [start, end], asking
    for etag and calendar-data, with recurrences expanded by the server
    over the same range.
    """
    prop = elements.Prop() + [
        elements.GetEtag(),
        elements.CalendarData() + elements.Expand(start, end),
    ]
    vevent = elements.CompFilter("VEVENT") + elements.TimeRange(start, end)
    query_filter = elements.Filter() + (elements.CompFilter("VCALENDAR") + vevent)
    return (elements.CalendarQuery() + [prop, query_filter]).to_xml()

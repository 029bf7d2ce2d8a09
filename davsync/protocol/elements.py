"""
The XML vocabulary of the two request bodies we send.

Elements are composed with ``+``, i.e.::

    Propfind() + (Prop() + [ResourceType(), DisplayName()])

and serialized with ``to_xml()``.
"""
from datetime import datetime
from typing import ClassVar
from typing import Dict
from typing import Iterable
from typing import List
from typing import Union

from lxml import etree
from lxml.etree import _Element

from davsync.lib.timestamps import format_timestamp

DAV_NS = "DAV:"
CALDAV_NS = "urn:ietf:params:xml:ns:caldav"

nsmap: Dict[str, str] = {"D": DAV_NS, "C": CALDAV_NS}


def dav(tag: str) -> str:
    return "{%s}%s" % (DAV_NS, tag)


def caldav(tag: str) -> str:
    return "{%s}%s" % (CALDAV_NS, tag)


class BaseElement:
    tag: ClassVar[str]

    def __init__(self, **attributes: str) -> None:
        self.attributes = attributes
        self.children: List["BaseElement"] = []

    def __add__(
        self, other: Union["BaseElement", Iterable["BaseElement"]]
    ) -> "BaseElement":
        if isinstance(other, BaseElement):
            self.children.append(other)
        else:
            self.children.extend(other)
        return self

    def xmlelement(self) -> _Element:
        root = etree.Element(self.tag, nsmap=nsmap)
        for name, value in self.attributes.items():
            root.set(name, value)
        for child in self.children:
            root.append(child.xmlelement())
        return root

    def to_xml(self) -> bytes:
        return etree.tostring(
            self.xmlelement(), encoding="utf-8", xml_declaration=True
        )


# DAV
class Propfind(BaseElement):
    tag = dav("propfind")


class Prop(BaseElement):
    tag = dav("prop")


class ResourceType(BaseElement):
    tag = dav("resourcetype")


class DisplayName(BaseElement):
    tag = dav("displayname")


class GetEtag(BaseElement):
    tag = dav("getetag")


# CalDAV, RFC 4791 section 9
class CalendarQuery(BaseElement):
    tag = caldav("calendar-query")


class CalendarData(BaseElement):
    tag = caldav("calendar-data")


class Filter(BaseElement):
    tag = caldav("filter")


class CompFilter(BaseElement):
    tag = caldav("comp-filter")

    def __init__(self, name: str) -> None:
        super().__init__(name=name)


class TimeRange(BaseElement):
    """start and end are sent as "date with UTC time" (RFC 4791, 9.9)"""

    tag = caldav("time-range")

    def __init__(self, start: datetime, end: datetime) -> None:
        super().__init__(start=format_timestamp(start), end=format_timestamp(end))


class Expand(TimeRange):
    tag = caldav("expand")

"""
Pure functions turning multistatus bodies into result objects.

Elements are matched on their local name only.  Servers disagree on
namespace prefixes, and some put DAV elements in odd or missing
namespaces, so ``{DAV:}href``, ``<d:href>`` and a bare ``<href>`` are all
treated alike.  Unrecognized elements are ignored.
"""

import logging
from typing import Any

from lxml import etree
from lxml.etree import _Element

from davsync.lib import error

from .types import CalendarQueryResult, PropfindResult

log = logging.getLogger(__name__)


def parse_multistatus(body: bytes) -> list[PropfindResult]:
    """
    All DAV:response elements of a 207 body, with their 2xx properties.

    Raises:
        ResponseError: the body can't be parsed as XML at all
    """
    results = []
    for elem in _response_elements(_parse_xml(body)):
        href, propstats, status = _parse_response_element(elem)
        results.append(
            PropfindResult(
                href=href,
                properties=_extract_properties(propstats),
                status=_status_to_code(status),
            )
        )
    return results


def parse_propfind_response(body: bytes, status_code: int = 207) -> list[PropfindResult]:
    """
    Results of a PROPFIND.  A 404 or an empty body gives no results, any
    other status but 200 and 207 raises PropfindError.
    """
    if status_code == 404:
        return []
    if status_code not in (200, 207):
        raise error.PropfindError(reason=f"PROPFIND failed with status {status_code}")
    if not body or not body.strip():
        return []
    return parse_multistatus(body)


def parse_calendar_query_response(
    body: bytes, status_code: int = 207
) -> list[CalendarQueryResult]:
    """
    Results of a calendar-query REPORT.  Any status but 200 and 207
    raises ReportError.
    """
    if status_code not in (200, 207):
        raise error.ReportError(reason=f"REPORT failed with status {status_code}")
    if not body or not body.strip():
        return []

    results = []
    for elem in _response_elements(_parse_xml(body)):
        href, propstats, status = _parse_response_element(elem)

        calendar_data: str | None = None
        etag: str | None = None
        for prop in _ok_props(propstats):
            for child in prop:
                name = _local_name(child)
                if name == "calendar-data":
                    calendar_data = _text_content(child)
                elif name == "getetag":
                    etag = child.text

        results.append(
            CalendarQueryResult(
                href=href,
                etag=etag,
                calendar_data=calendar_data,
                status=_status_to_code(status),
            )
        )
    return results


# Helper functions


def _parse_xml(body: bytes) -> _Element:
    ## recover=True: a truncated or slightly broken body still yields
    ## whatever could be read
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        tree = etree.fromstring(body, parser)
    except etree.XMLSyntaxError as e:
        raise error.ResponseError(reason=f"unparseable XML: {e}") from e
    if tree is None:
        raise error.ResponseError(reason="unparseable XML: empty document")
    return tree


def _local_name(elem: _Element) -> str | None:
    """Local part of the element tag, or None for comments and PIs."""
    if not isinstance(elem.tag, str):
        return None
    return etree.QName(elem).localname.lower()


def _response_elements(tree: _Element) -> list[_Element]:
    """
    All DAV:response elements, wherever they are.  Normally they are
    children of DAV:multistatus, but that one is sometimes missing or
    wrapped in something else.
    """
    return [elem for elem in tree.iter() if _local_name(elem) == "response"]


def _parse_response_element(
    response: _Element,
) -> tuple[str, list[_Element], str | None]:
    """(href, propstat elements, status line) of a DAV:response"""
    status: str | None = None
    href: str | None = None
    propstats: list[_Element] = []

    for elem in response:
        name = _local_name(elem)
        if name == "status":
            status = elem.text
        elif name == "href" and href is None:
            href = (elem.text or "").strip()
        elif name == "propstat":
            propstats.append(elem)

    return (href or "", propstats, status)


def _ok_props(propstats: list[_Element]) -> list[_Element]:
    """The prop elements of all propstats that don't carry an error status."""
    props = []
    for propstat in propstats:
        status = None
        prop = None
        for child in propstat:
            name = _local_name(child)
            if name == "status":
                status = child.text
            elif name == "prop":
                prop = child
        if prop is None:
            continue
        if status and not 200 <= _status_to_code(status) < 300:
            continue
        props.append(prop)
    return props


def _extract_properties(propstats: list[_Element]) -> dict[str, Any]:
    properties: dict[str, Any] = {}

    for prop in _ok_props(propstats):
        for child in prop:
            name = _local_name(child)
            if name is None:
                continue
            if name == "resourcetype":
                properties[name] = [
                    _local_name(x) for x in child if _local_name(x) is not None
                ]
            else:
                properties[name] = _text_content(child)

    return properties


def _text_content(elem: _Element) -> str | None:
    if len(elem) == 0:
        return elem.text
    text = "".join(elem.itertext())
    return text or None


def _status_to_code(status: str | None) -> int:
    """
    "HTTP/1.1 404 Not Found" -> 404.  A missing or unreadable status line
    counts as 200.
    """
    if not status:
        return 200

    parts = status.split()
    if len(parts) >= 2:
        try:
            return int(parts[1])
        except ValueError:
            log.debug("unexpected status line %r", status)

    return 200

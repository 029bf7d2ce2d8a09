"""
The CalDAV wire format, without any I/O: request bodies for PROPFIND and
calendar-query REPORT, and parsers for the multistatus answers.
"""
from .types import CalendarQueryResult
from .types import DAVMethod
from .types import DAVRequest
from .types import DAVResponse
from .types import PropfindResult
from .xml_builders import build_calendar_query_body
from .xml_builders import build_propfind_body
from .xml_parsers import parse_calendar_query_response
from .xml_parsers import parse_multistatus
from .xml_parsers import parse_propfind_response

__all__ = [
    "CalendarQueryResult",
    "DAVMethod",
    "DAVRequest",
    "DAVResponse",
    "PropfindResult",
    "build_calendar_query_body",
    "build_propfind_body",
    "parse_calendar_query_response",
    "parse_multistatus",
    "parse_propfind_response",
]

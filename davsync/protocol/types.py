"""
Requests, responses and parsed results, as plain data.  Nothing in here
does any I/O.
"""
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Any


class DAVMethod(Enum):
    PROPFIND = "PROPFIND"
    REPORT = "REPORT"


@dataclass(frozen=True)
class DAVRequest:
    """One HTTP request, ready to be handed to a transport."""

    method: DAVMethod
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None


@dataclass(frozen=True)
class DAVResponse:
    status: int
    headers: dict[str, str]
    body: bytes

    @property
    def is_auth_rejection(self) -> bool:
        """401 and 403: the server won't have our credentials"""
        return self.status in (401, 403)

    @property
    def reason(self) -> str:
        try:
            return HTTPStatus(self.status).phrase
        except ValueError:
            return "Unknown"


@dataclass
class PropfindResult:
    """
    One DAV:response of a PROPFIND multistatus.

    properties maps the local name of each property to its text, except
    resourcetype, which maps to the list of local names inside it.
    """

    href: str
    properties: dict[str, Any] = field(default_factory=dict)
    status: int = 200


@dataclass
class CalendarQueryResult:
    """One calendar object of a calendar-query REPORT."""

    href: str
    etag: str | None = None
    calendar_data: str | None = None
    status: int = 200

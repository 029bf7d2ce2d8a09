"""
CalDAV client built on the Sans-I/O protocol layer.

SyncProtocolClient builds the two requests the sync engine sends, hands
them to a transport and parses the answers.  It adds the error policy the
sync engine relies on:

* 401 and 403 raise AuthorizationError, whatever the operation.
* Transport failures (connection refused, DNS, timeouts) are raised as
  ResponseError, so callers only have to deal with DAVError.
"""

import base64
import logging
from datetime import datetime
from typing import Dict, List, Optional

import requests

from davsync.lib import error
from davsync.protocol import (
    CalendarQueryResult,
    DAVMethod,
    DAVRequest,
    DAVResponse,
    PropfindResult,
    build_calendar_query_body,
    build_propfind_body,
    parse_calendar_query_response,
    parse_propfind_response,
)
from davsync.transport import HTTPTransport, Transport

log = logging.getLogger(__name__)


class SyncProtocolClient:
    """
    Synchronous CalDAV client.  All URLs are absolute.

    Example:
        with SyncProtocolClient(username="user", password="secret") as client:
            for res in client.propfind(url, ["resourcetype", "displayname"]):
                print(res.href, res.properties)
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        io: Optional[Transport] = None,
    ):
        """
        Args:
            username: Username for Basic authentication
            password: Password for Basic authentication
            timeout: Per-request timeout in seconds
            verify_ssl: Verify SSL certificates
            io: transport to use instead of a fresh HTTPTransport
        """
        self.username = username
        self.password = password
        self.io = io or HTTPTransport(timeout=timeout, verify=verify_ssl)

    def close(self) -> None:
        self.io.close()

    def __enter__(self) -> "SyncProtocolClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/xml; charset=utf-8",
            "Depth": "1",
        }
        if self.username is not None:
            credentials = f"{self.username}:{self.password or ''}"
            encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
        return headers

    def _execute(self, request: DAVRequest) -> DAVResponse:
        if error.debug_dump_communication:
            log.debug(
                "SENDING %s %s\n%s",
                request.method.value,
                request.url,
                (request.body or b"").decode("utf-8", "replace"),
            )
        try:
            response = self.io.execute(request)
        except requests.RequestException as e:
            raise error.ResponseError(url=request.url, reason=str(e)) from e
        if error.debug_dump_communication:
            log.debug(
                "RECEIVED %s %s\n%s",
                response.status,
                response.reason,
                response.body.decode("utf-8", "replace"),
            )

        if response.is_auth_rejection:
            raise error.AuthorizationError(url=request.url, reason=response.reason)
        return response

    def propfind(self, url: str, props: List[str]) -> List[PropfindResult]:
        """
        PROPFIND with depth 1: the properties of ``url`` and of its
        immediate children.
        """
        request = DAVRequest(
            method=DAVMethod.PROPFIND,
            url=url,
            headers=self._headers(),
            body=build_propfind_body(props),
        )
        response = self._execute(request)
        return parse_propfind_response(response.body, response.status)

    def calendar_query(
        self, url: str, start: datetime, end: datetime
    ) -> List[CalendarQueryResult]:
        """
        calendar-query REPORT for the VEVENTs of the collection at ``url``
        intersecting [start, end], recurrences expanded.
        """
        request = DAVRequest(
            method=DAVMethod.REPORT,
            url=url,
            headers=self._headers(),
            body=build_calendar_query_body(start, end),
        )
        response = self._execute(request)
        return parse_calendar_query_response(response.body, response.status)

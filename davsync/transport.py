"""
HTTP transport for DAVRequests.

The transport is the only part of the client doing network I/O.  Anything
with ``execute(request) -> DAVResponse`` and ``close()`` will do as a
transport; tests use a fake one.
"""
import logging
import threading
from typing import Callable
from typing import List
from typing import Protocol

import requests

from davsync.protocol import DAVRequest
from davsync.protocol import DAVResponse

log = logging.getLogger(__name__)


class Transport(Protocol):
    def execute(self, request: DAVRequest) -> DAVResponse:
        ...

    def close(self) -> None:
        ...


class HTTPTransport:
    """
    Transport over requests.

    A requests.Session is not guaranteed to be thread safe, so every
    thread calling execute() gets a session of its own.  close() closes
    all of them.

    Transport errors and timeouts are raised as requests.RequestException.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify: bool = True,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        """
        Args:
            timeout: seconds per request
            verify: verify SSL certificates
            session_factory: makes a new session
        """
        self.timeout = timeout
        self.verify = verify
        self.session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """The session of the calling thread"""
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
            log.debug("new HTTP session for thread %s", threading.current_thread().name)
        return session

    def execute(self, request: DAVRequest) -> DAVResponse:
        response = self.session.request(
            method=request.method.value,
            url=request.url,
            headers=request.headers,
            data=request.body,
            timeout=self.timeout,
            verify=self.verify,
        )
        return DAVResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

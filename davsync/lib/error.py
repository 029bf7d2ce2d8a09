#!/usr/bin/env python
import logging
import os
from typing import Optional

from davsync import __version__

## Environmental variables prepended with "DAVSYNC_" are used for debug purposes
debug_dump_communication = bool(os.environ.get("DAVSYNC_COMMDUMP", False))
## one of DEBUG, DEVELOPMENT, PRODUCTION
debugmode = os.environ.get("DAVSYNC_DEBUGMODE")
if not debugmode:
    if "dev" in __version__:
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("davsync")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)


class DAVError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        if url:
            self.url = url
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        return "%s at '%s', reason %s" % (
            self.__class__.__name__,
            self.url,
            self.reason,
        )


class ConfigurationError(DAVError):
    """
    No usable external account: the account is missing, or the data
    given to create one is invalid.  Not worth retrying.
    """

    pass


class AuthorizationError(DAVError):
    """
    The server answered 401 or 403.  The url property will contain the
    url in question, the reason property will contain the excuse the
    server sent.  Other candidate URLs won't fare any better with the
    same credentials, so this aborts the sync run.
    """

    pass


class DiscoveryError(DAVError):
    """None of the candidate URLs exposed a calendar collection"""

    pass


class PropfindError(DAVError):
    pass


class ReportError(DAVError):
    pass


class PersistenceError(DAVError):
    pass


class NotFoundError(DAVError):
    pass


class ResponseError(DAVError):
    pass

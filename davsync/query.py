#!/usr/bin/env python
"""
Fetching the events of one calendar collection within a time window.
"""
import logging
from datetime import datetime
from typing import List
from typing import Tuple

from davsync.lib import error
from davsync.protocol import build_calendar_query_body
from davsync.protocol_client import SyncProtocolClient

log = logging.getLogger(__name__)


def build_time_range_query(start: datetime, end: datetime) -> bytes:
    """
    calendar-query body asking for VEVENTs intersecting [start, end],
    with recurrences expanded by the server over the same range.
    """
    return build_calendar_query_body(start, end)


def query_events(
    client: SyncProtocolClient,
    collection_url: str,
    start: datetime,
    end: datetime,
) -> Tuple[List[str], bool]:
    """
    Run a time-ranged REPORT against a calendar collection.

    Returns:
        Tuple of (raw calendar-data blocks, success).  A collection that
        can't be queried gives ([], False).

    Raises:
        AuthorizationError: the server rejected the credentials
    """
    try:
        results = client.calendar_query(collection_url, start, end)
    except error.AuthorizationError:
        log.warning("authentication rejected at %s", collection_url)
        raise
    except error.DAVError as e:
        log.info("could not query %s: %s", collection_url, e)
        return [], False

    blocks = [
        result.calendar_data
        for result in results
        if result.calendar_data
        and result.calendar_data.strip()
        and 200 <= result.status < 300
    ]
    log.debug("%i calendar object(s) from %s", len(blocks), collection_url)
    return blocks, True

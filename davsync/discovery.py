#!/usr/bin/env python
"""
Locating calendar collections on an unknown CalDAV server.

Users paste all kinds of things into the "server URL" field: the root of
the server, their principal URL, a calendar home, or a single calendar.
We try the given URL and then a short, fixed list of conventional home
locations, and ask each of them for its children with a depth 1
PROPFIND.  No principal or calendar-home-set lookup is done.

A location that answers 404, 405, 500, garbage or nothing at all is just
a miss.  A location answering 401 or 403 is not: the credentials are
wrong, and AuthorizationError propagates.
"""
import logging
from dataclasses import dataclass
from typing import List
from urllib.parse import quote
from urllib.parse import urlparse

from davsync.lib import error
from davsync.protocol_client import SyncProtocolClient

log = logging.getLogger(__name__)

DISCOVERY_PROPS = ["resourcetype", "displayname"]

## Paths relative to scheme://host, tried after the URL the user gave us.
## /dav/ is Fastmail and Radicale behind some proxies, /caldav/ is a
## common self-hosted prefix, /calendars/ is SabreDAV (Baikal, Nextcloud
## without the remote.php prefix), /principals/users/ is iCloud-style.
HOME_PATH_TEMPLATES = (
    "/dav/{username}/",
    "/caldav/{username}/",
    "/calendars/{username}/",
    "/principals/users/{username}/",
)


@dataclass
class CandidateCollection:
    """A collection found during discovery"""

    href: str
    url: str
    display_name: str
    is_calendar: bool = False


def _with_trailing_slash(url: str) -> str:
    url = url.strip()
    if not url.endswith("/"):
        url += "/"
    return url


def _server_base(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def candidate_home_urls(server_url: str, username: str) -> List[str]:
    """
    Ordered list of URLs that may hold the user's calendars, starting
    with the given URL itself.  No duplicates.
    """
    home = _with_trailing_slash(server_url)
    candidates = [home]

    parsed = urlparse(home)
    if parsed.scheme and parsed.netloc and username:
        base = _server_base(home)
        quoted_user = quote(username, safe="@")
        for template in HOME_PATH_TEMPLATES:
            candidates.append(base + template.format(username=quoted_user))

    unique = []
    for url in candidates:
        if url not in unique:
            unique.append(url)
    return unique


def resolve_collection_url(home_url: str, href: str) -> str:
    """
    Turn an href from a multistatus response into an absolute URL.

    * http(s)://... is returned as is
    * /path is resolved against scheme://host of home_url
    * anything else is taken relative to home_url
    """
    href = href.strip()
    if urlparse(href).scheme:
        return href
    if href.startswith("/"):
        return _server_base(home_url) + href
    return _with_trailing_slash(home_url) + href


def discover_calendars(
    client: SyncProtocolClient, home_url: str
) -> List[CandidateCollection]:
    """
    List the calendar collections directly below (or at) home_url.

    Returns an empty list on any kind of miss.

    Raises:
        AuthorizationError: the server rejected the credentials
    """
    try:
        results = client.propfind(home_url, DISCOVERY_PROPS)
    except error.AuthorizationError:
        log.warning("authentication rejected at %s", home_url)
        raise
    except error.DAVError as e:
        log.info("no calendars at %s: %s", home_url, e)
        return []

    calendars: List[CandidateCollection] = []
    seen = set()
    for result in results:
        if not result.href or not 200 <= result.status < 300:
            continue
        resource_types = result.properties.get("resourcetype") or []
        if "calendar" not in resource_types:
            continue
        url = resolve_collection_url(home_url, result.href)
        if url in seen:
            continue
        seen.add(url)
        display_name = (result.properties.get("displayname") or "").strip()
        calendars.append(
            CandidateCollection(
                href=result.href,
                url=url,
                display_name=display_name or result.href,
                is_calendar=True,
            )
        )

    if calendars:
        log.info("found %i calendar(s) at %s", len(calendars), home_url)
    else:
        log.info("no calendars at %s", home_url)
    return calendars

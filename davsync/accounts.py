"""
Connecting and disconnecting the one external calendar account a user
may have, and reading back what the sync engine cached for it.
"""
import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from urllib.parse import urlparse

from davsync.lib import error
from davsync.store import DEFAULT_COLOR
from davsync.store import EventStore
from davsync.store import ExternalAccount

log = logging.getLogger(__name__)


def _validate_server_url(server_url: str) -> str:
    server_url = server_url.strip()
    parsed = urlparse(server_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise error.ConfigurationError(
            url=server_url, reason="Server URL must be an http or https URL"
        )
    return server_url


def connect_account(
    store: EventStore,
    user_id: str,
    name: str,
    server_url: str,
    username: str,
    password: str,
    color: Optional[str] = None,
) -> ExternalAccount:
    """
    Store the external account for user_id.

    Raises:
        ConfigurationError: a field is missing, the URL is not usable, or
            the user already has an account
    """
    missing = [
        field
        for field, value in (
            ("name", name),
            ("server_url", server_url),
            ("username", username),
            ("password", password),
        )
        if not value or not str(value).strip()
    ]
    if missing:
        raise error.ConfigurationError(reason=f"Missing required fields: {', '.join(missing)}")
    server_url = _validate_server_url(server_url)

    if store.get_account_for_user(user_id) is not None:
        raise error.ConfigurationError(reason="Calendar account already exists")

    account = store.add_account(
        user_id=user_id,
        name=name.strip(),
        server_url=server_url,
        username=username.strip(),
        password=password,
        color=color or DEFAULT_COLOR,
    )
    log.info("connected calendar account %s for user %s", account.id, user_id)
    return account


def get_account_view(store: EventStore, user_id: str) -> Optional[Dict[str, Any]]:
    """The account as shown to the user, without the password"""
    account = store.get_account_for_user(user_id)
    if account is None:
        return None
    return {
        "id": account.id,
        "name": account.name,
        "serverUrl": account.server_url,
        "username": account.username,
        "color": account.color,
        "lastSynced": account.last_synced.isoformat() if account.last_synced else None,
        "createdAt": account.created_at.isoformat() if account.created_at else None,
    }


def disconnect_account(store: EventStore, user_id: str) -> None:
    """
    Remove the user's account along with every cached event.

    Raises:
        NotFoundError: the user has no account
    """
    account = store.get_account_for_user(user_id)
    if account is None:
        raise error.NotFoundError(reason="Calendar account not found")
    store.delete_account(account.id)
    log.info("disconnected calendar account %s for user %s", account.id, user_id)


def list_external_events(store: EventStore, user_id: str) -> List[Dict[str, Any]]:
    account = store.get_account_for_user(user_id)
    if account is None:
        return []
    return [
        {
            "id": event.id,
            "externalId": event.external_id,
            "title": event.title,
            "start": event.start_at.isoformat(),
            "end": event.end_at.isoformat(),
            "isAllDay": event.is_all_day,
            "color": account.color,
        }
        for event in store.list_events(account.id)
    ]

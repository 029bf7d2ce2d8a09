#!/usr/bin/env python
"""
The sync run: discovery, query, parse, reconcile.

A run goes through these states::

    NO_ACCOUNT -> DISCOVERING -> QUERYING -> RECONCILING -> DONE
                       (any of them) -> ERROR

Candidate home URLs are tried in order, and the first one whose
calendars give back at least one event wins.  Events are deduplicated,
clipped to the sync window and upserted into the local store, one
transaction per event.  Nothing is ever pushed back to the server.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from enum import Enum
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Tuple

from davsync.config import SyncSettings
from davsync.config import load_settings
from davsync.discovery import CandidateCollection
from davsync.discovery import candidate_home_urls
from davsync.discovery import discover_calendars
from davsync.ical import ParsedEvent
from davsync.ical import parse_events
from davsync.lib import error
from davsync.protocol_client import SyncProtocolClient
from davsync.query import query_events
from davsync.store import EventStore
from davsync.store import ExternalAccount

log = logging.getLogger(__name__)


class SyncState(Enum):
    NO_ACCOUNT = "no_account"
    DISCOVERING = "discovering"
    QUERYING = "querying"
    RECONCILING = "reconciling"
    DONE = "done"
    ERROR = "error"


class ErrorKind(Enum):
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    DISCOVERY = "discovery"
    PERSISTENCE = "persistence"
    PROTOCOL = "protocol"


_ERROR_KINDS = (
    (error.ConfigurationError, ErrorKind.CONFIGURATION),
    (error.AuthorizationError, ErrorKind.AUTHENTICATION),
    (error.DiscoveryError, ErrorKind.DISCOVERY),
    (error.PersistenceError, ErrorKind.PERSISTENCE),
)


def error_kind(exc: error.DAVError) -> ErrorKind:
    for cls, kind in _ERROR_KINDS:
        if isinstance(exc, cls):
            return kind
    return ErrorKind.PROTOCOL


@dataclass
class SyncResult:
    success: bool
    synced_count: int = 0
    last_synced_at: Optional[datetime] = None
    home_url: Optional[str] = None
    state: SyncState = SyncState.DONE
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        """The shape handed to API callers"""
        if not self.success:
            return {
                "success": False,
                "error": self.error_kind.value if self.error_kind else None,
                "message": self.message,
            }
        return {
            "success": True,
            "syncedEvents": self.synced_count,
            "lastSyncedAt": self.last_synced_at.isoformat()
            if self.last_synced_at
            else None,
        }


@dataclass
class SyncRun:
    """Bookkeeping for one run"""

    account_id: int
    state: SyncState = SyncState.NO_ACCOUNT

    def transition(self, state: SyncState) -> None:
        log.debug("sync of account %s: %s -> %s", self.account_id, self.state.value, state.value)
        self.state = state


def select_events(
    events: Iterable[ParsedEvent], window_start: datetime, window_end: datetime
) -> List[ParsedEvent]:
    """
    Drop duplicates on (uid, start), keeping the first one seen, drop
    events not intersecting [window_start, window_end) and sort the rest
    by start.
    """
    seen = set()
    selected = []
    for event in events:
        if event.key in seen:
            continue
        seen.add(event.key)
        if event.end > window_start and event.start < window_end:
            selected.append(event)
    selected.sort(key=lambda e: e.start)
    return selected


## one lock per (database, account), shared by every orchestrator in
## the process
_account_locks: Dict[Tuple[str, int], threading.Lock] = {}
_account_locks_guard = threading.Lock()


def account_lock(store: EventStore, account_id: int) -> threading.Lock:
    key = (str(store.engine.url), account_id)
    with _account_locks_guard:
        return _account_locks.setdefault(key, threading.Lock())


ClientFactory = Callable[[ExternalAccount], SyncProtocolClient]


class SyncOrchestrator:
    """
    Pull-only synchronization of one external account into the store.

    Example:
        store = EventStore("sqlite:///davsync.db")
        orchestrator = SyncOrchestrator(store)
        result = orchestrator.sync(account_id)
        if not result.success:
            print(result.error_kind, result.message)
    """

    def __init__(
        self,
        store: EventStore,
        settings: Optional[SyncSettings] = None,
        client_factory: Optional[ClientFactory] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            store: the local cache
            settings: window size, timeouts etc.  Read with load_settings()
                if not given
            client_factory: builds the CalDAV client for an account
            now: clock, returning an aware datetime
        """
        self.store = store
        self.settings = settings or load_settings()
        self.client_factory = client_factory or self._default_client
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _default_client(self, account: ExternalAccount) -> SyncProtocolClient:
        return SyncProtocolClient(
            username=account.username,
            password=account.password,
            timeout=self.settings.timeout,
            verify_ssl=self.settings.verify_ssl,
        )

    def window(self, now: datetime) -> Tuple[datetime, datetime]:
        return (
            now - timedelta(days=self.settings.window_past_days),
            now + timedelta(days=self.settings.window_future_days),
        )

    def sync(self, account_id: int) -> SyncResult:
        """
        Run a sync and report the outcome.  Failures are returned, not
        raised, with error_kind telling what went wrong.
        """
        run = SyncRun(account_id)
        try:
            return self.run(account_id, run)
        except error.DAVError as e:
            kind = error_kind(e)
            run.transition(SyncState.ERROR)
            if kind is ErrorKind.CONFIGURATION:
                log.info("sync of account %s: %s", account_id, e.reason)
            else:
                log.warning("sync of account %s failed: %s", account_id, e)
            return SyncResult(
                success=False,
                state=run.state,
                error_kind=kind,
                message=e.reason,
            )

    def run(self, account_id: int, run: Optional[SyncRun] = None) -> SyncResult:
        """
        Like sync, but raises DAVError subclasses on failure.  Runs for the
        same account in the same database are serialized, across
        orchestrators.
        """
        run = run or SyncRun(account_id)
        with account_lock(self.store, account_id):
            return self._run(run)

    def _run(self, run: SyncRun) -> SyncResult:
        account = self.store.get_account(run.account_id)
        if account is None:
            raise error.ConfigurationError(reason="No calendar account configured")

        now = self._now()
        window_start, window_end = self.window(now)

        run.transition(SyncState.DISCOVERING)
        with self.client_factory(account) as client:
            home_url, blocks = self._search_homes(
                client,
                candidate_home_urls(account.server_url, account.username),
                window_start,
                window_end,
                run,
            )

        run.transition(SyncState.RECONCILING)
        parsed: List[ParsedEvent] = []
        for block in blocks:
            parsed.extend(parse_events(block))
        events = select_events(parsed, window_start, window_end)
        log.info(
            "account %s: %i event(s) in window, %i parsed, %i calendar object(s)",
            account.id,
            len(events),
            len(parsed),
            len(blocks),
        )

        for event in events:
            self._upsert(account.id, event)

        if self.settings.prune_stale and events:
            pruned = self.store.delete_stale_events(
                account.id, [e.uid for e in events], window_start, window_end
            )
            if pruned:
                log.info("account %s: pruned %i stale event(s)", account.id, pruned)

        if home_url and home_url != account.server_url:
            log.info(
                "account %s: server URL %s -> %s", account.id, account.server_url, home_url
            )
            self.store.update_account(account.id, server_url=home_url, last_synced=now)
        else:
            self.store.update_account(account.id, last_synced=now)

        run.transition(SyncState.DONE)
        return SyncResult(
            success=True,
            synced_count=len(events),
            last_synced_at=now,
            home_url=home_url,
            state=run.state,
        )

    def _search_homes(
        self,
        client: SyncProtocolClient,
        candidates: List[str],
        start: datetime,
        end: datetime,
        run: SyncRun,
    ) -> Tuple[Optional[str], List[str]]:
        """
        Try candidate home URLs in order.

        Returns:
            (home URL, raw calendar-data blocks) of the first home giving
            any events, or of the first home with calendars if none did.

        Raises:
            DiscoveryError: no candidate exposed a calendar
            AuthorizationError: a request was rejected
        """
        first_home: Optional[str] = None
        for home_url in candidates:
            if run.state is not SyncState.DISCOVERING:
                run.transition(SyncState.DISCOVERING)
            calendars = discover_calendars(client, home_url)
            if not calendars:
                continue
            if first_home is None:
                first_home = home_url

            run.transition(SyncState.QUERYING)
            blocks = self._query_calendars(client, calendars, start, end)
            if blocks:
                return home_url, blocks
            log.info("calendars at %s gave no events", home_url)

        if first_home is None:
            raise error.DiscoveryError(
                url=candidates[0] if candidates else None,
                reason="No calendars found.  Check the server URL and credentials.",
            )
        return first_home, []

    def _query_calendars(
        self,
        client: SyncProtocolClient,
        calendars: List[CandidateCollection],
        start: datetime,
        end: datetime,
    ) -> List[str]:
        def query(calendar: CandidateCollection) -> List[str]:
            blocks, ok = query_events(client, calendar.url, start, end)
            if not ok:
                log.info("skipping calendar %s (%s)", calendar.display_name, calendar.url)
            return blocks

        if self.settings.max_workers > 1 and len(calendars) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as pool:
                ## map keeps the order of calendars
                outcomes = list(pool.map(query, calendars))
        else:
            outcomes = [query(calendar) for calendar in calendars]

        blocks: List[str] = []
        for outcome in outcomes:
            blocks.extend(outcome)
        return blocks

    def _upsert(self, account_id: int, event: ParsedEvent) -> None:
        record = {
            "title": event.summary,
            "start_at": event.start,
            "end_at": event.end,
            "is_all_day": event.is_all_day,
        }
        existing = self.store.find_external_event(account_id, event.uid)
        if existing is None:
            self.store.insert_external_event(
                {"account_id": account_id, "external_id": event.uid, **record}
            )
        else:
            self.store.update_external_event(existing.id, record)

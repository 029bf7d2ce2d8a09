"""
Local cache of external accounts and their events.

SQLAlchemy models plus the small store API the sync engine talks to.
Every public method runs in its own session and transaction, so a
failure halfway through a sync run leaves the earlier upserts committed.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from datetime import timezone
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import create_engine
from sqlalchemy import DateTime
from sqlalchemy import ForeignKey
from sqlalchemy import Integer
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from davsync.lib import error

log = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///davsync.db"
DEFAULT_COLOR = "#A0A0A0"

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes, stored as naive UTC"""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class ExternalAccount(Base):
    __tablename__ = "external_accounts"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False, default="")
    server_url = Column(String(2048), nullable=False)
    username = Column(String(255), nullable=False)
    password = Column(String(1024), nullable=False)
    color = Column(String(16), nullable=False, default=DEFAULT_COLOR)
    last_synced = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    events = relationship(
        "ExternalEvent", back_populates="account", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"ExternalAccount(id={self.id}, user_id={self.user_id!r}, server_url={self.server_url!r})"


class ExternalEvent(Base):
    __tablename__ = "external_events"
    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uq_external_events_account_uid"),
    )

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("external_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id = Column(String(1024), nullable=False)
    title = Column(Text, nullable=False, default="")
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    is_all_day = Column(Boolean, nullable=False, default=False)

    account = relationship("ExternalAccount", back_populates="events")

    def __repr__(self) -> str:
        return f"ExternalEvent(id={self.id}, external_id={self.external_id!r}, start_at={self.start_at})"


def _is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


class EventStore:
    """
    Persistence for ExternalAccount and ExternalEvent rows.

    Example:
        store = EventStore("sqlite:///davsync.db")
        store.create_all()
        account = store.get_account(1)
    """

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, engine=None, echo: bool = False):
        if engine is None:
            kwargs: Dict[str, Any] = {"echo": echo}
            if _is_memory_sqlite(database_url):
                ## one shared connection, or every session sees its own empty database
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            else:
                kwargs["pool_pre_ping"] = True
            engine = create_engine(database_url, **kwargs)
        self.engine = engine
        self.Session = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings, echo: bool = False) -> "EventStore":
        """Store at settings.database_url, i.e. ``EventStore.from_settings(load_settings())``"""
        return cls(settings.database_url, echo=echo)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self):
        """Context manager for database sessions"""
        session = self.Session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            log.error(f"Database error: {e}")
            raise error.PersistenceError(reason=str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Accounts

    def get_account(self, account_id: int) -> Optional[ExternalAccount]:
        with self.session_scope() as session:
            return session.get(ExternalAccount, account_id)

    def get_account_for_user(self, user_id: str) -> Optional[ExternalAccount]:
        with self.session_scope() as session:
            return session.scalars(
                select(ExternalAccount).where(ExternalAccount.user_id == user_id)
            ).first()

    def add_account(self, **fields) -> ExternalAccount:
        with self.session_scope() as session:
            account = ExternalAccount(**fields)
            session.add(account)
            session.flush()
            return account

    def delete_account(self, account_id: int) -> None:
        """Delete an account together with its cached events"""
        with self.session_scope() as session:
            account = session.get(ExternalAccount, account_id)
            if account is None:
                raise error.NotFoundError(reason=f"no account with id {account_id}")
            session.delete(account)

    def update_account(
        self,
        account_id: int,
        server_url: Optional[str] = None,
        last_synced: Optional[datetime] = None,
    ) -> None:
        with self.session_scope() as session:
            account = session.get(ExternalAccount, account_id)
            if account is None:
                raise error.NotFoundError(reason=f"no account with id {account_id}")
            if server_url is not None:
                account.server_url = server_url
            if last_synced is not None:
                account.last_synced = last_synced

    # Events

    def find_external_event(
        self, account_id: int, external_id: str
    ) -> Optional[ExternalEvent]:
        with self.session_scope() as session:
            return session.scalars(
                select(ExternalEvent).where(
                    ExternalEvent.account_id == account_id,
                    ExternalEvent.external_id == external_id,
                )
            ).first()

    def insert_external_event(self, record: Dict[str, Any]) -> ExternalEvent:
        with self.session_scope() as session:
            event = ExternalEvent(**record)
            session.add(event)
            session.flush()
            return event

    def update_external_event(self, event_id: int, record: Dict[str, Any]) -> None:
        with self.session_scope() as session:
            event = session.get(ExternalEvent, event_id)
            if event is None:
                raise error.NotFoundError(reason=f"no event with id {event_id}")
            for key, value in record.items():
                setattr(event, key, value)

    def list_events(self, account_id: int) -> List[ExternalEvent]:
        with self.session_scope() as session:
            return list(
                session.scalars(
                    select(ExternalEvent)
                    .where(ExternalEvent.account_id == account_id)
                    .order_by(ExternalEvent.start_at, ExternalEvent.id)
                )
            )

    def delete_stale_events(
        self,
        account_id: int,
        keep_external_ids: Iterable[str],
        window_start: datetime,
        window_end: datetime,
    ) -> int:
        """
        Delete cached events starting inside [window_start, window_end)
        whose external id is not in keep_external_ids.  Returns the number
        of deleted rows.
        """
        keep = set(keep_external_ids)
        with self.session_scope() as session:
            stale = [
                event
                for event in session.scalars(
                    select(ExternalEvent).where(
                        ExternalEvent.account_id == account_id,
                        ExternalEvent.start_at >= window_start,
                        ExternalEvent.start_at < window_end,
                    )
                )
                if event.external_id not in keep
            ]
            for event in stale:
                session.delete(event)
            return len(stale)

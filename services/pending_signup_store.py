import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from database import get_session
from errors import StorageError
from otpmodel.otp_model import PendingSignupEntry
from services.logs_service import logger as root_logger
from services.otp_ledger import Clock, as_utc, utc_now

logger = root_logger.getChild("pending_signup")


@dataclass(frozen=True)
class PendingSignup:
    """Registration data held between sending and verifying a sign-up code."""

    email: str
    password_hash: str
    name: str
    role: str
    expires_at: datetime


class PendingSignupStore(ABC):
    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    @abstractmethod
    def save(
        self, email: str, password_hash: str, name: str, role: str, ttl: timedelta
    ) -> PendingSignup:
        """Store the record for email, replacing any previous one."""

    @abstractmethod
    def get(self, email: str) -> PendingSignup | None:
        """Return the record for email, or None if it is missing or expired."""

    @abstractmethod
    def discard(self, email: str) -> None:
        pass

    @abstractmethod
    def sweep_expired(self) -> int:
        """Delete every record whose expiry is at or before now."""


class SQLPendingSignupStore(PendingSignupStore):
    def __init__(
        self,
        session_factory: Callable[[], Session] = get_session,
        clock: Clock = utc_now,
    ):
        super().__init__(clock)
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Pending signup storage failure")
            raise StorageError() from exc

    def save(self, email, password_hash, name, role, ttl):
        now = self.clock()
        with self._session() as session:
            entry = PendingSignupEntry(
                email=email,
                password_hash=password_hash,
                name=name,
                role=role,
                created_at=now,
                expires_at=now + ttl,
            )
            session.merge(entry)
            session.commit()
        return PendingSignup(email, password_hash, name, role, now + ttl)

    def get(self, email):
        now = self.clock()
        with self._session() as session:
            entry = session.get(PendingSignupEntry, email)
            if entry is None:
                return None

            expires_at = as_utc(entry.expires_at)
            if expires_at <= now:
                session.delete(entry)
                session.commit()
                return None

            return PendingSignup(
                entry.email, entry.password_hash, entry.name, entry.role, expires_at
            )

    def discard(self, email):
        with self._session() as session:
            session.exec(delete(PendingSignupEntry).where(PendingSignupEntry.email == email))
            session.commit()

    def sweep_expired(self):
        now = self.clock()
        with self._session() as session:
            stmt = delete(PendingSignupEntry).where(PendingSignupEntry.expires_at <= now)
            result = session.exec(stmt)
            session.commit()
            return result.rowcount or 0


class InMemoryPendingSignupStore(PendingSignupStore):
    def __init__(self, clock: Clock = utc_now):
        super().__init__(clock)
        self._records: dict[str, PendingSignup] = {}
        self._lock = threading.Lock()

    def save(self, email, password_hash, name, role, ttl):
        record = PendingSignup(email, password_hash, name, role, self.clock() + ttl)
        with self._lock:
            self._records[email] = record
        return record

    def get(self, email):
        now = self.clock()
        with self._lock:
            record = self._records.get(email)
            if record is not None and record.expires_at <= now:
                del self._records[email]
                return None
            return record

    def discard(self, email):
        with self._lock:
            self._records.pop(email, None)

    def sweep_expired(self):
        now = self.clock()
        with self._lock:
            expired = [email for email, r in self._records.items() if r.expires_at <= now]
            for email in expired:
                del self._records[email]
        return len(expired)

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from database import get_session
from errors import StorageError
from otpmodel.otp_model import OTPEntry
from services.logs_service import logger as root_logger

logger = root_logger.getChild("otp_ledger")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite stores naive datetime, so replace tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OTPRecord:
    email: str
    code: str
    created_at: datetime
    expires_at: datetime


class OTPLedger(ABC):
    """Short-lived one-time codes keyed by email.

    Several records may exist for one email; only the most recently created
    unexpired record counts. Every method is atomic on its own, but a
    sequence of calls is not.
    """

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    @abstractmethod
    def put(self, email: str, code: str, ttl: timedelta) -> OTPRecord:
        """Store a new record expiring at now + ttl. Existing records are kept."""

    @abstractmethod
    def find_active(self, email: str) -> OTPRecord | None:
        """Return the newest record for email whose expiry is still ahead."""

    def verify(self, email: str, candidate_code: str) -> bool:
        # Plain string equality; not a constant-time comparison.
        record = self.find_active(email)
        if record is None:
            return False
        return record.code == candidate_code

    @abstractmethod
    def invalidate(self, email: str) -> int:
        """Delete every record for email. Returns the number removed."""

    @abstractmethod
    def sweep_expired(self) -> int:
        """Delete every record whose expiry is at or before now."""


class SQLOTPLedger(OTPLedger):
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
            logger.exception("OTP ledger storage failure")
            raise StorageError() from exc

    @staticmethod
    def _to_record(entry: OTPEntry) -> OTPRecord:
        return OTPRecord(
            email=entry.email,
            code=entry.code,
            created_at=as_utc(entry.created_at),
            expires_at=as_utc(entry.expires_at),
        )

    def put(self, email: str, code: str, ttl: timedelta) -> OTPRecord:
        now = self.clock()
        with self._session() as session:
            entry = OTPEntry(email=email, code=code, created_at=now, expires_at=now + ttl)
            session.add(entry)
            session.commit()
            session.refresh(entry)
            return self._to_record(entry)

    def find_active(self, email: str) -> OTPRecord | None:
        now = self.clock()
        with self._session() as session:
            stmt = (
                select(OTPEntry)
                .where(OTPEntry.email == email, OTPEntry.expires_at > now)
                .order_by(OTPEntry.created_at.desc(), OTPEntry.id.desc())
                .limit(1)
            )
            entry = session.exec(stmt).first()
            return self._to_record(entry) if entry else None

    def invalidate(self, email: str) -> int:
        with self._session() as session:
            result = session.exec(delete(OTPEntry).where(OTPEntry.email == email))
            session.commit()
            return result.rowcount or 0

    def sweep_expired(self) -> int:
        # Complement of find_active's "expires_at > now"
        now = self.clock()
        with self._session() as session:
            result = session.exec(delete(OTPEntry).where(OTPEntry.expires_at <= now))
            session.commit()
            return result.rowcount or 0


class InMemoryOTPLedger(OTPLedger):
    """Process-local ledger, for single-worker deployments and tests."""

    def __init__(self, clock: Clock = utc_now):
        super().__init__(clock)
        self._records: dict[str, list[OTPRecord]] = {}
        self._lock = threading.Lock()

    def put(self, email: str, code: str, ttl: timedelta) -> OTPRecord:
        now = self.clock()
        record = OTPRecord(email=email, code=code, created_at=now, expires_at=now + ttl)
        with self._lock:
            self._records.setdefault(email, []).append(record)
        return record

    def find_active(self, email: str) -> OTPRecord | None:
        now = self.clock()
        with self._lock:
            records = list(self._records.get(email, []))
        # Records are appended in creation order, so the last live one wins
        for record in reversed(records):
            if record.expires_at > now:
                return record
        return None

    def invalidate(self, email: str) -> int:
        with self._lock:
            return len(self._records.pop(email, []))

    def sweep_expired(self) -> int:
        now = self.clock()
        removed = 0
        with self._lock:
            for email in list(self._records):
                live = [r for r in self._records[email] if r.expires_at > now]
                removed += len(self._records[email]) - len(live)
                if live:
                    self._records[email] = live
                else:
                    del self._records[email]
        return removed

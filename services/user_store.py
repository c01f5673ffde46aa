from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from database import get_session
from errors import ConflictError, StorageError
from services.logs_service import logger as root_logger
from usermodel.user_model import User

logger = root_logger.getChild("users")


class UserStore:
    """Credential store backed by the users table."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.session_factory() as session:
                yield session
        except IntegrityError as exc:
            logger.warning(f"Rejected write on users due to a constraint violation: {exc.orig}")
            raise ConflictError("Email already registered") from exc
        except SQLAlchemyError as exc:
            logger.exception("User storage failure")
            raise StorageError() from exc

    def get_by_email(self, email: str) -> User | None:
        # Case-sensitive: emails are compared exactly as stored
        with self._session() as session:
            return session.exec(select(User).where(User.email == email)).first()

    def get_by_id(self, user_id: int) -> User | None:
        with self._session() as session:
            return session.get(User, user_id)

    def create(
        self, email: str, password_hash: str, name: str, role: str = "user"
    ) -> User:
        with self._session() as session:
            user = User(email=email, password_hash=password_hash, name=name, role=role)
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def update_profile(
        self,
        user_id: int,
        name: str | None = None,
        email: str | None = None,
        profile_picture: str | None = None,
    ) -> User | None:
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                return None

            if name:
                user.name = name
            if email:
                user.email = email
            if profile_picture is not None:
                user.profile_picture = profile_picture
            user.updated_at = datetime.now(timezone.utc)

            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def list_users(self) -> list[User]:
        with self._session() as session:
            stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
            return list(session.exec(stmt).all())

    def delete(self, user_id: int) -> bool:
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                return False
            session.delete(user)
            session.commit()
            return True

"""User data access layer."""

import logging
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from festive.models import User
from festive.security.encryption import searchable_hash

from .exceptions import DuplicateError

logger = logging.getLogger(__name__)


class UserRepository:
    """Centralized user data access.

    Emails are encrypted at rest, so every email lookup goes through the
    searchable hash. Soft-deleted users are invisible to all ``find_*`` calls.

    Naming conventions:
    - find_* : Query that may return None
    - get_* : Query that raises exception if missing
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def _live(self):
        return self._db.query(User).filter(User.deleted_at.is_(None))

    def find_by_id(self, user_id: str) -> User | None:
        """Find user by primary key."""
        return self._live().filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> User | None:
        """Find user by email (case-insensitive, via the lookup hash)."""
        return self._live().filter(User.email_hash == searchable_hash(email)).first()

    def find_active_by_id(self, user_id: str) -> User | None:
        """Find active user by ID."""
        return self._live().filter(User.id == user_id, User.is_active.is_(True)).first()

    def email_exists(self, email: str) -> bool:
        """True if any account, including soft-deleted ones, holds this email."""
        return (
            self._db.query(User.id).filter(User.email_hash == searchable_hash(email)).first()
            is not None
        )

    def create(self, email: str, password_hash: str, name: str | None = None) -> User:
        """Insert a new, unverified user.

        Raises:
            DuplicateError: If the email is already registered.
        """
        user = User(email=email, password_hash=password_hash, name=name, email_verified=False)
        email_hash = user.email_hash
        self._db.add(user)
        try:
            self._db.flush()
        except IntegrityError as e:
            self._db.rollback()
            raise DuplicateError("User", "email_hash", email_hash) from e
        return user

    def touch_last_login(self, user: User) -> None:
        user.last_login_at = datetime.now(UTC)

    def mark_email_verified(self, user_id: str) -> None:
        self._db.query(User).filter(User.id == user_id).update(
            {User.email_verified: True}, synchronize_session=False
        )

    def update_password(self, user_id: str, password_hash: str) -> None:
        self._db.query(User).filter(User.id == user_id).update(
            {User.password_hash: password_hash}, synchronize_session=False
        )

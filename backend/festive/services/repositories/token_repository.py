"""Single-use account token data access (email verification, password reset)."""

import logging
from datetime import UTC, datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from festive.models import EmailVerificationToken, PasswordResetToken

logger = logging.getLogger(__name__)

TokenModel = type[EmailVerificationToken] | type[PasswordResetToken]


class TokenRepository:
    """Issue, look up and consume hashed single-use tokens of one kind.

    At most one token per user is active: issuing a token retires every
    earlier unused one.
    """

    def __init__(self, db: Session, model: TokenModel) -> None:
        self._db = db
        self._model = model

    def issue(self, user_id: str, token_hash: str, expires_at: datetime):
        retired = self._db.execute(
            update(self._model)
            .where(self._model.user_id == user_id, self._model.used_at.is_(None))
            .values(used_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        ).rowcount
        if retired:
            logger.debug(f"Retired {retired} earlier {self._model.__tablename__} for user {user_id}")

        token = self._model(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        self._db.add(token)
        return token

    def find_active(self, token_hash: str):
        """Unused, unexpired token with this hash, or None."""
        return (
            self._db.query(self._model)
            .filter(
                self._model.token_hash == token_hash,
                self._model.used_at.is_(None),
                self._model.expires_at > datetime.now(UTC),
            )
            .first()
        )

    def consume(self, token_id: str) -> bool:
        """Mark the token used only if it is still unused."""
        result = self._db.execute(
            update(self._model)
            .where(self._model.id == token_id, self._model.used_at.is_(None))
            .values(used_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

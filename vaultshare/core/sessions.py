"""
Human login sessions.

absent -> active -> expired | revoked. Only ``hash_token(token)`` is stored; the
plaintext returned by :meth:`SessionManager.create_session` cannot be recovered
later. Expiry is lazy: an expired row is deleted the first time it is presented.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..database.models import Session, User
from ..utils.unified_error_handler import AuthenticationError, DatabaseError
from .context import VaultContext
from .credentials import generate_token, hash_token

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(self, ctx: VaultContext):
        self.ctx = ctx
        self.db = ctx.session

    def create_session(self, user_id: str) -> str:
        """Persist a new session for ``user_id`` and return its plaintext token."""
        token = generate_token()
        now = self.ctx.now()
        session = Session(
            user_id=user_id,
            token_hash=hash_token(token),
            created_at=now,
            expires_at=now + self.ctx.settings.session_duration,
        )
        try:
            self.db.add(session)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create session for user {user_id}: {e}")
            raise DatabaseError('Failed to create session', error_code='DATABASE_ERROR') from e
        return token

    def validate(self, token: str) -> User:
        """Resolve a presented session token to its User.

        Raises:
            AuthenticationError: ``UNAUTHORIZED``, ``SESSION_EXPIRED`` or ``USER_NOT_FOUND``
        """
        if not token:
            raise AuthenticationError('Missing authorization token', error_code='UNAUTHORIZED')

        token_hash = hash_token(token)
        session = self.db.query(Session).filter_by(token_hash=token_hash).first()
        if session is None:
            raise AuthenticationError('Invalid session', error_code='UNAUTHORIZED')

        if self.ctx.now() >= session.expires_at:
            self._delete_by_hash(token_hash)
            raise AuthenticationError('Session has expired', error_code='SESSION_EXPIRED')

        user = self.db.get(User, session.user_id)
        if user is None:
            raise AuthenticationError('User not found', error_code='USER_NOT_FOUND')

        return user

    def revoke(self, token: str) -> None:
        """Delete the session for ``token``. Revoking an unknown token is not an error."""
        if token:
            self._delete_by_hash(hash_token(token))

    def _delete_by_hash(self, token_hash: str) -> None:
        try:
            self.db.query(Session).filter_by(token_hash=token_hash).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError('Failed to delete session') from e

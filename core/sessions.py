"""Session rows and the refresh-token grants bound to them.

Writes that belong to a caller's larger unit of work (``create``,
``record_refresh_token``, ``revoke_refresh_tokens``) only flush; standalone
writes commit.
"""

import datetime
from uuid import uuid4

from sqlalchemy.orm import Session

from core.errors import Unauthenticated
from models.refresh_token import RefreshToken
from models.session import UserSession
from utils.clock import isonow, utcnow
from utils.state import State
from utils.token import hash_token


class SessionStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str) -> UserSession:
        now = utcnow()
        user_session = UserSession(
            session_id=str(uuid4()),
            user_id=user_id,
            is_active=True,
            last_activity=now,
            created_at=now,
        )
        self.db.add(user_session)
        self.db.flush()
        return user_session

    def validate(self, user_id: str, session_id: str | None) -> UserSession:
        user_session = None
        if session_id:
            user_session = (
                self.db.query(UserSession)
                .filter_by(session_id=session_id, user_id=user_id, is_active=True)
                .first()
            )
        if not user_session:
            State.logger.warning(f"Rejected session {session_id} for user {user_id}")
            raise Unauthenticated("Session is invalid or expired")
        user_session.last_activity = utcnow()
        self.db.commit()
        return user_session

    def revoke(self, user_id: str, session_id: str) -> int:
        self.db.query(RefreshToken).filter_by(
            user_id=user_id, session_id=session_id
        ).delete(synchronize_session=False)
        deleted = (
            self.db.query(UserSession)
            .filter_by(user_id=user_id, session_id=session_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def revoke_others(self, user_id: str, except_session_id: str) -> int:
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.session_id != except_session_id,
        ).delete(synchronize_session=False)
        deleted = (
            self.db.query(UserSession)
            .filter(
                UserSession.user_id == user_id,
                UserSession.session_id != except_session_id,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def revoke_all(self, user_id: str) -> int:
        self.db.query(RefreshToken).filter_by(user_id=user_id).delete(
            synchronize_session=False
        )
        deleted = (
            self.db.query(UserSession)
            .filter_by(user_id=user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def record_refresh_token(
        self, user_id: str, session_id: str, token: str, ttl: datetime.timedelta
    ) -> RefreshToken:
        grant = self.db.query(RefreshToken).filter_by(session_id=session_id).first()
        if grant is None:
            grant = RefreshToken(
                token_id=str(uuid4()),
                user_id=user_id,
                session_id=session_id,
                time_created=isonow(),
            )
            self.db.add(grant)
        grant.token_hash = hash_token(token)
        grant.expires_at = utcnow() + ttl
        grant.time_updated = isonow()
        self.db.flush()
        return grant

    def has_refresh_grant(self, user_id: str, session_id: str, token: str) -> bool:
        """True only for the most recently issued refresh token of a live session."""
        grant = (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.session_id == session_id,
                RefreshToken.token_hash == hash_token(token),
                RefreshToken.expires_at > utcnow(),
            )
            .first()
        )
        return grant is not None

    def revoke_refresh_tokens(self, user_id: str) -> int:
        deleted = (
            self.db.query(RefreshToken)
            .filter_by(user_id=user_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted

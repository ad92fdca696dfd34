# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Bearer session tokens.

Tokens are 32 random bytes sent to the client once; only their SHA-256 hash
is stored. Sessions expire after an absolute lifetime and are revoked after
an idle period (SESSION_ABSOLUTE_TIMEOUT_HOURS / SESSION_IDLE_TIMEOUT_HOURS).

The SessionContext built here is the explicit caller context every ledger,
stock and sync operation receives; services never read the request.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


@dataclass
class SessionContext:
    """Authenticated caller: who, through which session, from where."""
    user: User
    session: SessionToken | None
    shop_id: int | None
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def user_id(self) -> int:
        return self.user.id


def system_context(user: User) -> SessionContext:
    """Context for CLI/scheduler triggers acting as a given user."""
    return SessionContext(user=user, session=None, shop_id=user.shop_id)


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_ABSOLUTE_TIMEOUT_HOURS"])


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_IDLE_TIMEOUT_HOURS"])


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a new session for an active user.

    Returns (session_record, plaintext_token); only the hash is persisted.
    """
    if not user.is_active:
        raise ValueError("User account is deactivated")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        shop_id=user.shop_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(
    token: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SessionContext | None:
    """
    Resolve a bearer token to a SessionContext.

    Returns None for unknown, revoked, expired or idle sessions, and for
    deactivated users. Touches last_used_at on success.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        shop_id=session.shop_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def refresh_session(context: SessionContext) -> tuple[SessionToken, str]:
    """Rotate the caller's token: revoke the current session, issue a new one."""
    if context.session is not None:
        _revoke(context.session, "Refreshed")
    return create_session(
        context.user,
        user_agent=context.user_agent,
        ip_address=context.ip_address,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False
    _revoke(session, reason)
    db.session.commit()
    return True


def cleanup_expired_sessions() -> int:
    """Delete sessions past their absolute expiry. Returns count removed."""
    count = db.session.query(SessionToken).filter(
        SessionToken.expires_at < utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return count


def revoke_all_user_sessions(user_id: int, reason: str) -> int:
    """Revoke every live session of a user. Joins the caller's unit of work."""
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _revoke(session, reason)
    return len(sessions)

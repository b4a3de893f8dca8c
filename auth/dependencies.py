"""
Authentication dependencies for FastAPI.
"""
from datetime import datetime
from typing import Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from auth.security import security_optional, decode_access_token
from core.exceptions import AuthenticationRequired, TransientBackendFailure
from database.models import User, UserSession
import config


def get_db_session():
    """Get database session."""
    if not config.db:
        raise TransientBackendFailure("Database not initialized")
    with config.db.get_session() as session:
        yield session


def get_storage():
    """Get the configured object storage backend."""
    if not config.storage:
        raise TransientBackendFailure("File storage not initialized")
    return config.storage


def _current_session(db: Session, payload: dict) -> Optional[UserSession]:
    session_id = payload.get("sid")
    if not session_id:
        return None
    session = db.get(UserSession, session_id)
    if session is None or not session.is_active:
        return None
    if session.expires_at <= datetime.utcnow():
        return None
    if session.user_id != payload.get("sub"):
        return None
    return session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    db: Session = Depends(get_db_session)
) -> User:
    """
    Get current authenticated principal from the bearer token.

    The token must decode, and the server-side session it names must still be
    active, so signing out invalidates tokens already handed out.

    Raises:
        AuthenticationRequired: If there is no valid session
    """
    if credentials is None:
        raise AuthenticationRequired()

    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise AuthenticationRequired("Invalid authentication credentials")

    if _current_session(db, payload) is None:
        raise AuthenticationRequired("Session expired or signed out")

    user = db.get(User, payload["sub"])
    if user is None or not user.is_active:
        raise AuthenticationRequired("User not found or inactive")

    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    db: Session = Depends(get_db_session)
) -> Optional[User]:
    """
    Get current user if authenticated, otherwise None.
    """
    if credentials is None:
        return None

    try:
        return await get_current_user(credentials, db)
    except AuthenticationRequired:
        return None


"""
Authentication service: sign-up, sign-in with lockout, sessions and refresh tokens.
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from auth.security import (
    verify_password, get_password_hash, validate_password, create_access_token,
    create_refresh_token, decode_refresh_token, generate_session_key, hash_token
)
from core.exceptions import AuthenticationRequired, ValidationFailure
from core.logger import logger
from database.models import AppRole, Profile, RefreshToken, RoleAssignment, User, UserSession
from services.role_service import parse_role
import config


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def sign_up(
        db: Session,
        email: str,
        password: str,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        """
        Create a principal with a profile and one role.

        Args:
            db: Database session
            email: Sign-in email (unique, case-insensitive)
            password: Plain text password, validated for strength
            full_name: Display name for the profile
            role: Requested role; defaults to student. Only roles listed in
                SIGNUP_SELF_SERVICE_ROLES may be picked here.

        Returns:
            Created User
        """
        email = (email or "").strip().lower()
        if not email:
            raise ValidationFailure("Email is required")

        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise ValidationFailure(error_message)

        app_role = parse_role(role) if role else AppRole.STUDENT
        if app_role.value not in config.SIGNUP_SELF_SERVICE_ROLES and app_role != AppRole.STUDENT:
            raise ValidationFailure(f"Role '{app_role.value}' cannot be chosen at sign-up")

        if AuthService.get_user_by_email(db, email):
            raise ValidationFailure("User with this email already exists")

        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            is_active=True,
            password_changed_at=datetime.utcnow(),
        )
        db.add(user)
        db.flush()
        db.add(Profile(user_id=user.id, full_name=(full_name or "").strip() or None))
        db.add(RoleAssignment(user_id=user.id, role=app_role))
        db.commit()
        db.refresh(user)
        logger.info(f"Created user: {email} (role: {app_role.value})")
        return user

    @staticmethod
    def authenticate_user(
        db: Session,
        email: str,
        password: str,
        ip_address: Optional[str] = None
    ) -> Optional[User]:
        """
        Authenticate a user with account lockout protection.

        Returns:
            User if authenticated, None otherwise
        """
        user = AuthService.get_user_by_email(db, email)
        if not user:
            return None

        # Check if account is locked
        if user.is_locked:
            if user.locked_until and user.locked_until > datetime.utcnow():
                logger.warning(f"Login attempt for locked account: {email} from {ip_address}")
                return None
            # Lockout expired, unlock account
            user.is_locked = False
            user.locked_until = None
            user.failed_login_attempts = 0
            db.commit()

        if not verify_password(password, user.hashed_password):
            user.failed_login_attempts += 1

            # Lock account if max attempts reached
            if user.failed_login_attempts >= config.MAX_LOGIN_ATTEMPTS:
                user.is_locked = True
                user.locked_until = datetime.utcnow() + timedelta(minutes=config.LOCKOUT_DURATION_MINUTES)
                logger.warning(f"Account locked due to too many failed attempts: {email}")

            db.commit()
            return None

        if not user.is_active:
            return None

        # Reset failed attempts on successful login
        user.failed_login_attempts = 0
        user.is_locked = False
        user.locked_until = None
        user.last_login = datetime.utcnow()
        db.commit()

        return user

    @staticmethod
    def ensure_profile(db: Session, user: User) -> Profile:
        """Create the principal's profile on first sign-in if it is missing."""
        profile = db.query(Profile).filter(Profile.user_id == user.id).first()
        if profile:
            return profile
        profile = Profile(user_id=user.id, full_name=user.email.split("@")[0])
        db.add(profile)
        db.commit()
        db.refresh(profile)
        logger.info(f"Created profile on first sign-in for user: {user.id}")
        return profile

    @staticmethod
    def create_tokens(user: User, session_id: str) -> Tuple[str, str]:
        """
        Create access and refresh tokens bound to a server-side session.

        Returns:
            Tuple of (access_token, refresh_token)
        """
        data = {
            "sub": user.id,
            "email": user.email,
            "sid": session_id,
        }
        return create_access_token(data), create_refresh_token(data)

    @staticmethod
    def save_refresh_token(
        db: Session,
        user_id: str,
        refresh_token: str,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None
    ) -> RefreshToken:
        """Store the hash of a refresh token."""
        refresh_token_obj = RefreshToken(
            user_id=user_id,
            token_hash=hash_token(refresh_token),
            device_info=device_info,
            ip_address=ip_address,
            expires_at=datetime.utcnow() + timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS)
        )
        db.add(refresh_token_obj)
        db.commit()
        db.refresh(refresh_token_obj)
        return refresh_token_obj

    @staticmethod
    def revoke_refresh_token(db: Session, token_hash: str) -> bool:
        """Revoke a refresh token."""
        token = db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash,
            RefreshToken.is_revoked == False  # noqa: E712
        ).first()

        if not token:
            return False

        token.is_revoked = True
        token.revoked_at = datetime.utcnow()
        db.commit()
        return True

    @staticmethod
    def rotate_refresh_token(
        db: Session,
        refresh_token: str,
        ip_address: Optional[str] = None
    ) -> Tuple[User, str, str]:
        """
        Exchange a refresh token for a new token pair.

        The old refresh token is revoked. The session named by the token must
        still be active, so signing out also ends refreshing.

        Raises:
            AuthenticationRequired: If the token or its session is no longer valid
        """
        payload = decode_refresh_token(refresh_token)
        if payload is None:
            raise AuthenticationRequired("Invalid refresh token")

        stored = db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token),
            RefreshToken.is_revoked == False  # noqa: E712
        ).first()
        if stored is None or stored.expires_at <= datetime.utcnow():
            raise AuthenticationRequired("Refresh token revoked or expired")

        session = db.get(UserSession, payload.get("sid"))
        if session is None or not session.is_active or session.expires_at <= datetime.utcnow():
            raise AuthenticationRequired("Session expired or signed out")

        user = db.get(User, payload.get("sub"))
        if user is None or not user.is_active:
            raise AuthenticationRequired("User not found or inactive")

        stored.is_revoked = True
        stored.revoked_at = datetime.utcnow()
        db.commit()

        access_token, new_refresh_token = AuthService.create_tokens(user, session.id)
        AuthService.save_refresh_token(
            db, user.id, new_refresh_token, device_info=stored.device_info, ip_address=ip_address
        )
        return user, access_token, new_refresh_token

    @staticmethod
    def create_session(
        db: Session,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[str, UserSession]:
        """
        Create a new session for user.

        Returns:
            Tuple of (session_key, UserSession object)
        """
        session_key, session_hash = generate_session_key()
        session = UserSession(
            user_id=user_id,
            session_hash=session_hash,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
            expires_at=datetime.utcnow() + timedelta(hours=config.SESSION_EXPIRE_HOURS),
            is_active=True
        )
        db.add(session)
        db.commit()
        db.refresh(session)

        logger.info(f"Created session for user: {user_id}")
        return session_key, session

    @staticmethod
    def revoke_session(db: Session, session_id: str) -> bool:
        """Deactivate a session; tokens naming it stop working."""
        session = db.query(UserSession).filter(
            UserSession.id == session_id,
            UserSession.is_active == True  # noqa: E712
        ).first()

        if not session:
            return False

        session.is_active = False
        db.commit()
        logger.info(f"Revoked session {session_id} for user: {session.user_id}")
        return True

    @staticmethod
    def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
        """Get user by ID."""
        return db.get(User, user_id)

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)."""
        if not email:
            return None
        return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

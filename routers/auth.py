"""
Authentication endpoints: sign-up, sign-in, token refresh, sign-out.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from auth.dependencies import get_db_session, get_current_user
from auth.security import security_optional, decode_access_token, hash_token
from core.exceptions import AuthenticationRequired
from core.logger import logger
from database.models import Profile, User
from services.audit_service import AuditService
from services.auth_service import AuthService
from services.role_service import RoleService
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])


# Request Models
class SignUpRequest(BaseModel):
    """Sign-up request. Role defaults to student."""
    email: EmailStr
    password: str
    fullName: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(BaseModel):
    """Login request."""
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""
    refresh_token: str


class LogoutRequest(BaseModel):
    """Optional refresh token to revoke together with the session."""
    refresh_token: Optional[str] = None


# Response Models
class UserInfo(BaseModel):
    """Signed-in principal as seen by the client."""
    id: str
    email: str
    authenticated: bool = True
    roles: List[str]
    fullName: Optional[str] = None
    avatarUrl: Optional[str] = None


class TokenResponse(BaseModel):
    """Token response model."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserInfo


class LogoutResponse(BaseModel):
    """Logout response."""
    success: bool


def _user_info(db: Session, user: User) -> UserInfo:
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    return UserInfo(
        id=user.id,
        email=user.email,
        roles=sorted(role.value for role in RoleService.get_roles(db, user.id)),
        fullName=profile.full_name if profile else None,
        avatarUrl=profile.avatar_url if profile else None,
    )


def _issue_tokens(db: Session, user: User, request: Request) -> TokenResponse:
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")

    _, session = AuthService.create_session(db, user.id, ip_address=ip_address, user_agent=user_agent)
    access_token, refresh_token = AuthService.create_tokens(user, session.id)
    AuthService.save_refresh_token(
        db, user.id, refresh_token, device_info=(user_agent or "")[:255] or None, ip_address=ip_address
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=_user_info(db, user),
    )


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    request_data: SignUpRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """
    Create an account and sign it in.
    Public endpoint. Students by default; admin cannot be chosen here.
    """
    user = AuthService.sign_up(
        db,
        email=request_data.email,
        password=request_data.password,
        full_name=request_data.fullName,
        role=request_data.role,
    )
    AuditService.log_from_request(
        db=db, request=request, action="user_signup", user_id=user.id,
        resource_type="user", resource_id=user.id,
        details={"role": request_data.role or "student"}
    )
    return _issue_tokens(db, user, request)


@router.post("/login", response_model=TokenResponse)
async def login(
    request_data: LoginRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Email/password sign-in. Public endpoint."""
    ip_address = request.client.host if request.client else None
    user = AuthService.authenticate_user(db, request_data.email, request_data.password, ip_address)
    if user is None:
        AuditService.log_from_request(
            db=db, request=request, action="login_failed",
            details={"email": request_data.email}
        )
        raise AuthenticationRequired("Incorrect email or password")

    # First sign-in creates the profile
    AuthService.ensure_profile(db, user)
    AuditService.log_from_request(db=db, request=request, action="user_login", user_id=user.id)
    logger.info(f"User signed in: {user.email}")
    return _issue_tokens(db, user, request)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_tokens(
    request_data: RefreshTokenRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Exchange a refresh token for a new token pair. Public endpoint."""
    ip_address = request.client.host if request.client else None
    user, access_token, refresh_token = AuthService.rotate_refresh_token(
        db, request_data.refresh_token, ip_address=ip_address
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=_user_info(db, user),
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    request_data: Optional[LogoutRequest] = None,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """End the current session. Its access and refresh tokens stop working."""
    payload = decode_access_token(credentials.credentials)
    AuthService.revoke_session(db, payload["sid"])
    if request_data and request_data.refresh_token:
        AuthService.revoke_refresh_token(db, hash_token(request_data.refresh_token))

    AuditService.log_from_request(db=db, request=request, action="user_logout", user_id=current_user.id)
    return LogoutResponse(success=True)


@router.get("/me", response_model=UserInfo)
async def me(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Current principal with its roles and profile."""
    return _user_info(db, current_user)

"""
api/routes/auth.py -- Authentication, verification, and password-reset endpoints.

Routes:
  POST /login                     -- username-or-email + password; returns session token
  POST /signup                    -- create account, mail verification link; 201
  POST /resend-verification       -- new verification link for an unverified account
  GET  /verification/{token}      -- consume a verification link
  GET  /verify                    -- check the presented session token (requires auth)
  POST /forgot-password           -- mail a password reset link
  POST /reset-password/{token}    -- consume a reset link with {newPassword}
  GET  /logout                    -- revoke the presented session token (requires auth)

Handlers are plain `def` so FastAPI runs them in its worker thread pool:
bcrypt and the store calls block, and must not block the event loop.

Security:
  Cache-Control: no-store on login responses (the body is a bearer credential).
  Unknown username and wrong password share one message (no enumeration).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from api.models import (
    EmailRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SessionCheckResponse,
    SessionUser,
    SignupRequest,
    TokenResponse,
)
from auth.dependencies import get_auth_service, get_current_user
from auth.models import CurrentUser
from auth.service import AuthService

# Auth policy:
# - POST /login, /signup, /resend-verification, /forgot-password: public
# - GET  /verification/{token}, POST /reset-password/{token}:      public, action token in path
# - GET  /verify, GET /logout:                                     require a session token
router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Authenticate with username (or email) and password; return a session token."""
    if body.username:
        token = service.login(body.username, body.password)
    else:
        token = service.login(body.email, body.password, by_email=True)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(token=token)


@router.post("/signup", response_model=MessageResponse, status_code=201)
def signup(body: SignupRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.signup(body.username, body.email, body.password)
    return MessageResponse(
        message="User registered successfully. Please check your email to verify your account."
    )


@router.post("/resend-verification", response_model=MessageResponse)
def resend_verification(body: EmailRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.resend_verification(body.email)
    return MessageResponse(message="Verification email resent successfully")


@router.get("/verification/{token}", response_model=MessageResponse)
def verification(token: str, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.verify_email(token)
    return MessageResponse(message="User verified successfully")


@router.get("/verify", response_model=SessionCheckResponse)
def verify_session(current_user: CurrentUser = Depends(get_current_user)) -> SessionCheckResponse:
    """Confirm the session token is valid and return the identity attached to it."""
    return SessionCheckResponse(message="User is authenticated", user=SessionUser.from_current(current_user))


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(body: EmailRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.forgot_password(body.email)
    return MessageResponse(message="Password reset link sent successfully")


@router.post("/reset-password/{token}", response_model=MessageResponse)
def reset_password(
    token: str,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.reset_password(token, body.new_password)
    return MessageResponse(message="Password reset successfully")


@router.get("/logout", response_model=MessageResponse)
def logout(
    current_user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the session token this request authenticated with.

    Other sessions of the same user (other devices) stay valid.
    """
    service.logout(current_user.token, current_user.id)
    return MessageResponse(message="Logged out successfully")

"""
api/routes/users.py -- Self-service profile endpoints (all require a session token).

Routes:
  GET  /user                   -- current user's profile
  PUT  /user                   -- update username / email / name / phoneNumber
  POST /user/change-password   -- {currentPassword, newPassword}

Changing the email address clears emailVerified; the user has to consume a
new verification link (POST /resend-verification).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import ChangePasswordRequest, MessageResponse, UserResponse, UserUpdate
from auth.dependencies import get_auth_service, get_current_user
from auth.models import CurrentUser
from auth.service import AuthService

router = APIRouter()


@router.get("/user", response_model=UserResponse)
def get_user(
    current_user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    return UserResponse.from_user(service.get_profile(current_user.id))


@router.put("/user", response_model=UserResponse)
def update_user(
    body: UserUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    updated = service.update_profile(current_user.id, **body.model_dump(exclude_none=True))
    return UserResponse.from_user(updated)


@router.post("/user/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.change_password(current_user.id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")

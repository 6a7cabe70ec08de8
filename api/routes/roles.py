"""
api/routes/roles.py -- Role catalog and assignment endpoints (admin only).

Routes:
  POST /roles                  -- {roleName, description?}; 201 role
  POST /assign-role            -- {userId, roleId}
  GET  /user/{user_id}/roles   -- role names of any user

All three require a session token (401 otherwise) AND the "admin" role
(403 otherwise).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import MessageResponse, RoleAssign, RoleCreate, RoleResponse
from auth.dependencies import get_auth_service, require_roles
from auth.models import CurrentUser
from auth.service import AuthService

ADMIN_ROLE = "admin"

router = APIRouter()


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(
    body: RoleCreate,
    current_user: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
    service: AuthService = Depends(get_auth_service),
) -> RoleResponse:
    return RoleResponse.from_role(service.create_role(body.role_name, body.description))


@router.post("/assign-role", response_model=MessageResponse)
def assign_role(
    body: RoleAssign,
    current_user: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    service.assign_role(body.user_id, body.role_id)
    return MessageResponse(message="Role assigned successfully")


@router.get("/user/{user_id}/roles", response_model=list[str])
def get_user_roles(
    user_id: int,
    current_user: CurrentUser = Depends(require_roles(ADMIN_ROLE)),
    service: AuthService = Depends(get_auth_service),
) -> list[str]:
    return service.get_user_roles(user_id)

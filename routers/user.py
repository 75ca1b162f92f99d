"""
User management router.
Listing is restricted to ADMIN/BOSS by the route policy table; the
online-status view is open to any signed-in user.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from middleware.auth_dependency import get_current_claims, get_notifications, get_user_service
from models.user import UserListResponse, UserResponse, UserStatusResponse, UserUpdate
from services.notification_service import ConnectionRegistry
from services.user_service import UserService
from utils.exceptions import ClientInputError
from utils.jwt_security import TokenClaims
from utils.validation import SecurityValidator, ValidationConfig

router = APIRouter(tags=["users"])
logger = logging.getLogger(__name__)


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    role: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    claims: TokenClaims = Depends(get_current_claims),
    user_service: UserService = Depends(get_user_service),
):
    try:
        role = SecurityValidator.validate_choice(role, ValidationConfig.ROLES, "Role")
    except ValueError as e:
        raise ClientInputError(str(e))
    return user_service.list_users(page=page, limit=limit, role=role, search=search or None)


@router.get("/status", response_model=List[UserStatusResponse])
async def users_status(
    claims: TokenClaims = Depends(get_current_claims),
    user_service: UserService = Depends(get_user_service),
    notifications: ConnectionRegistry = Depends(get_notifications),
):
    return user_service.users_with_status(notifications.online_user_ids())


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    claims: TokenClaims = Depends(get_current_claims),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.update_user(user_id, payload, claims)

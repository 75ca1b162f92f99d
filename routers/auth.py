"""
Authentication router: registration, login and the current user.
Brute-force and auth-rate guards run in the pipeline before these handlers.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends

from middleware.auth_dependency import get_auth_service, get_brute_force_key, get_current_claims
from models.user import AuthResponse, UserLogin, UserRegister, UserResponse
from services.auth_service import AuthService
from utils.jwt_security import TokenClaims

router = APIRouter(tags=["authentication"])
logger = logging.getLogger(__name__)


@router.post("/register", response_model=AuthResponse)
async def register(
    payload: UserRegister,
    auth_service: AuthService = Depends(get_auth_service),
    attempt_key: Optional[str] = Depends(get_brute_force_key),
):
    return await auth_service.register(payload, attempt_key)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: UserLogin,
    auth_service: AuthService = Depends(get_auth_service),
    attempt_key: Optional[str] = Depends(get_brute_force_key),
):
    return await auth_service.login(payload, attempt_key)


@router.get("/me", response_model=UserResponse)
async def me(
    claims: TokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
):
    return auth_service.current_user(claims.sub)

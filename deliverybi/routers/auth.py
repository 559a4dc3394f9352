"""Authentication endpoints used by the frontend application."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr

from deliverybi.core.config import settings
from deliverybi.core.logging import auth_logger
from deliverybi.core.security import (
    ALL_ROLES,
    AccessClaims,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    require_roles,
)
from deliverybi.domain.users import DemoUser, authenticate, get_demo_user_by_id


router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserOut(BaseModel):
    id: str
    email: EmailStr
    name: str
    roles: list[str]
    companies: list[str]


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int
    user: UserOut


def _user_out(user: DemoUser) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        name=user.name,
        roles=user.roles,
        companies=user.companies,
    )


def _token_response(user: DemoUser) -> LoginResponse:
    return LoginResponse(
        access_token=create_access_token(user_id=user.id, roles=user.roles, companies=user.companies),
        refresh_token=create_refresh_token(user_id=user.id),
        expires_in=settings.ACCESS_TOKEN_MINUTES * 60,
        user=_user_out(user),
    )


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest) -> LoginResponse:
    user = authenticate(payload.email, payload.password)
    if user is None:
        auth_logger.warning("Login failed", email=payload.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Credenciales inválidas.",
        )
    auth_logger.info("Login ok", user=user.id)
    return _token_response(user)


@router.post("/refresh", response_model=LoginResponse)
def refresh(payload: RefreshRequest) -> LoginResponse:
    claims = decode_refresh_token(payload.refresh_token)
    user = get_demo_user_by_id(claims.sub)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token inválido.")
    return _token_response(user)


@router.get("/me", response_model=UserOut)
def me(claims: AccessClaims = Depends(require_roles(*ALL_ROLES))) -> UserOut:
    user = get_demo_user_by_id(claims.sub)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado.")
    return _user_out(user)

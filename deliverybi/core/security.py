from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field, ValidationError
from deliverybi.core.config import settings
from deliverybi.core.logging import auth_logger

# -----------------------------------------------------------------------------
# 1) Hash y verificación de contraseñas
# -----------------------------------------------------------------------------

_pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(plain: str) -> str:
    return _pwd_ctx.hash(plain)

def verify_password(plain: str, hashed: str) -> bool:
    return _pwd_ctx.verify(plain, hashed)

# -----------------------------------------------------------------------------
# 2) Claims de los tokens
# -----------------------------------------------------------------------------

TokenType = Literal["access", "refresh", "share"]

ROLE_CONSULTANT = "consultant"
ROLE_MANAGER = "manager"
ROLE_ADMIN = "admin"
ALL_ROLES = (ROLE_CONSULTANT, ROLE_MANAGER, ROLE_ADMIN)

class BaseClaims(BaseModel):
    sub: str
    type: TokenType
    exp: Optional[int] = None

class AccessClaims(BaseClaims):
    roles: List[str] = Field(default_factory=list)
    companies: List[str] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in {r.lower() for r in self.roles}

class RefreshClaims(BaseClaims):
    pass

class ShareClaims(BaseClaims):
    objective_id: str
    mode: str = "view"

# -----------------------------------------------------------------------------
# 3) Helpers internos
# -----------------------------------------------------------------------------

_ALG = settings.JWT_ALGORITHM
bearer_scheme = HTTPBearer(auto_error=True)

def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)

def _exp_in(minutes: int) -> int:
    return int((_utcnow() + timedelta(minutes=minutes)).timestamp())

def _encode(payload: Dict[str, Any], secret: str) -> str:
    return jwt.encode(payload, secret, algorithm=_ALG)

def _decode(token: str, secret: str, verify_exp: bool = True) -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=[_ALG], options={"verify_exp": verify_exp})
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido o expirado."
        )

# -----------------------------------------------------------------------------
# 4) Emisión de tokens
# -----------------------------------------------------------------------------

def create_access_token(*, user_id: str, roles: List[str], companies: List[str]) -> str:
    claims = AccessClaims(
        sub=user_id,
        type="access",
        exp=_exp_in(settings.ACCESS_TOKEN_MINUTES),
        roles=roles,
        companies=companies,
    )
    return _encode(claims.model_dump(), settings.JWT_SECRET)

def create_refresh_token(*, user_id: str) -> str:
    claims = RefreshClaims(
        sub=user_id,
        type="refresh",
        exp=_exp_in(settings.REFRESH_TOKEN_MINUTES),
    )
    return _encode(claims.model_dump(), settings.JWT_REFRESH_SECRET)

def create_share_token(*, objective_id: str) -> str:
    """Token for a public objective link. It has no ``exp``; the share-link row decides validity."""
    claims = ShareClaims(
        sub="share",
        type="share",
        objective_id=objective_id,
        mode="view",
    )
    return _encode(claims.model_dump(exclude_none=True), settings.JWT_SHARE_SECRET)

# -----------------------------------------------------------------------------
# 5) Decodificación por tipo
# -----------------------------------------------------------------------------

def decode_access_token(token: str) -> AccessClaims:
    data = _decode(token, settings.JWT_SECRET)
    try:
        claims = AccessClaims(**data)
    except ValidationError:
        raise HTTPException(status_code=401, detail="Token de acceso inválido.")
    if claims.type != "access":
        raise HTTPException(status_code=401, detail="Token de acceso inválido.")
    return claims

def decode_refresh_token(token: str) -> RefreshClaims:
    data = _decode(token, settings.JWT_REFRESH_SECRET)
    try:
        claims = RefreshClaims(**data)
    except ValidationError:
        raise HTTPException(status_code=401, detail="Refresh token inválido.")
    if claims.type != "refresh":
        raise HTTPException(status_code=401, detail="Refresh token inválido.")
    return claims

def decode_share_token(token: str) -> ShareClaims:
    # la caducidad la decide la fila del enlace, no el token
    data = _decode(token, settings.JWT_SHARE_SECRET, verify_exp=False)
    try:
        return ShareClaims(**data)
    except ValidationError:
        raise HTTPException(status_code=401, detail="Token de enlace compartido inválido.")

# -----------------------------------------------------------------------------
# 6) Dependencias de FastAPI
# -----------------------------------------------------------------------------

def get_current_access(creds: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> AccessClaims:
    return decode_access_token(creds.credentials)

def require_roles(*allowed_roles: str):
    def _dep(claims: AccessClaims = Depends(get_current_access)) -> AccessClaims:
        roles = set(map(str.lower, claims.roles or []))
        allowed = set(map(str.lower, allowed_roles))
        if roles.isdisjoint(allowed):
            auth_logger.warning("Role check failed", user=claims.sub, roles=sorted(roles))
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permiso denegado."
            )
        return claims
    return _dep

def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    expected = settings.CRON_SECRET
    if not expected or authorization != f"Bearer {expected}":
        auth_logger.warning("Unauthorized cron request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

def resolve_company_scope(claims: AccessClaims, requested: Optional[Sequence[str]]) -> List[str]:
    """
    Intersects the requested companies with the caller's scope.

    Admins may ask for any company. Everybody else gets their assigned companies when
    nothing is requested, and a 403 when asking for one outside that list.
    """
    requested_ids = [str(c) for c in requested] if requested else []
    if claims.is_admin:
        return requested_ids or list(claims.companies)
    base = [str(c) for c in claims.companies or []]
    if not requested_ids:
        return base
    if not set(requested_ids).issubset(base):
        raise HTTPException(status_code=403, detail="Empresas fuera del alcance del usuario.")
    return requested_ids

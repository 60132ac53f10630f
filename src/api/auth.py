"""
Authentication
- Web: Supabase access token (HS256 JWT, verified locally)
- Development: x-user-id header (only with ALLOW_DEV_USER_HEADER=true)

Every protected route depends on get_current_principal (or one of the
role/lock guards built on it).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config.config import (
    ALLOW_DEV_USER_HEADER,
    ENVIRONMENT,
    SUPABASE_JWT_AUDIENCE,
    SUPABASE_JWT_SECRET,
)
from config.sentry import set_user_context
from src.core.exceptions import AccountLockedError, to_http_exception
from src.database.crud import get_or_create_profile
from src.database.engine import get_session
from src.database.models import AdminRole, Profile

SUPABASE_JWT_ALGORITHM = "HS256"

ROLE_USER = "user"


@dataclass
class Principal:
    """Authenticated caller"""

    user_id: str
    email: Optional[str]
    role: str
    profile: Profile
    created: bool = False  # Profile was created by this request

    @property
    def is_admin(self) -> bool:
        return self.role in (AdminRole.ADMIN.value, AdminRole.SUPER_ADMIN.value)

    @property
    def is_super_admin(self) -> bool:
        return self.role == AdminRole.SUPER_ADMIN.value


def decode_supabase_jwt(token: str) -> Dict[str, Any]:
    """
    Decode and validate a Supabase access token

    Args:
        token: JWT from the Supabase client session

    Returns:
        dict: Token claims (sub = user id)

    Raises:
        HTTPException: 401 if the token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=[SUPABASE_JWT_ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.debug(f"JWT rejected: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")

    return payload


def role_for(profile: Profile) -> str:
    if profile.is_admin and profile.admin_role in (AdminRole.ADMIN.value, AdminRole.SUPER_ADMIN.value):
        return profile.admin_role
    if profile.is_admin:
        return AdminRole.ADMIN.value
    return ROLE_USER


def dev_header_allowed() -> bool:
    return ENVIRONMENT == "development" and ALLOW_DEV_USER_HEADER


async def get_current_principal(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> Principal:
    """
    FastAPI dependency for the authenticated caller

    The profile is created on first sight of a new Supabase user.

    Raises:
        HTTPException: 401 without valid credentials, 403 for banned users

    Usage:
        @router.get("/profile")
        async def get_profile(principal: Principal = Depends(get_current_principal)):
            return {"user_id": principal.user_id}
    """
    user_id = None
    email = None
    full_name = None

    if authorization and authorization.startswith("Bearer "):
        payload = decode_supabase_jwt(authorization[7:])
        user_id = payload["sub"]
        email = payload.get("email")
        full_name = (payload.get("user_metadata") or {}).get("full_name")

    elif x_user_id:
        if not dev_header_allowed():
            logger.warning(f"Ignoring x-user-id header outside development ({x_user_id})")
            raise HTTPException(status_code=401, detail="Authentication required")
        user_id = x_user_id

    else:
        raise HTTPException(status_code=401, detail="Authentication required")

    profile, created = await get_or_create_profile(session, user_id, email, full_name)
    if created:
        logger.info(f"Auto-created profile for user {user_id} ({email})")

    if profile.is_banned:
        raise HTTPException(status_code=403, detail="Your account has been suspended")

    set_user_context(user_id, profile.email)

    return Principal(
        user_id=user_id,
        email=profile.email or email,
        role=role_for(profile),
        profile=profile,
        created=created,
    )


async def require_unlocked_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Locked accounts can read but not spend credits"""
    if principal.profile.is_locked:
        raise to_http_exception(AccountLockedError(
            "Your account is locked. Please contact support."
        ))
    return principal


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


async def require_super_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_super_admin:
        raise HTTPException(status_code=403, detail="Super admin access required")
    return principal


def ensure_model_access(principal: Principal, owner_id: str) -> None:
    """404 for models the caller does not own (admins may access any)"""
    if owner_id != principal.user_id and not principal.is_admin:
        raise HTTPException(status_code=404, detail="Model not found")

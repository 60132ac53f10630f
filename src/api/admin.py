# coding: utf-8
"""
Admin Console API

Every change is written together with its admin_actions audit row
(client IP + user agent) in one transaction.

Roles:
- admin: users list/detail, ban/lock, update, stats
- super_admin: delete users, manage admins
"""

import json
import math
from datetime import datetime, UTC
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from supabase import AuthApiError

from config.config import FIRST_ADMIN_EMAIL
from src.api.auth import Principal, require_admin, require_super_admin
from src.api.rate_limit import limiter
from src.core.exceptions import FanovaError, to_http_exception
from src.database import crud
from src.database.engine import get_session
from src.database.models import AdminActionType, AdminRole, PlanType, Profile
from src.services.credit_service import CreditService, serialize_transaction
from src.services.storage_service import supabase_service
from src.services.stripe_service import get_stripe_service

DEFAULT_REASON = "No reason provided"

# Create router
router = APIRouter(prefix="/admin", tags=["admin"])


# ===========================
# REQUEST MODELS
# ===========================


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class UpdateUserRequest(BaseModel):
    credits: Optional[int] = Field(None, ge=0)
    subscription_plan: Optional[str] = None


class CreateAdminRequest(BaseModel):
    email: Optional[str] = None
    admin_role: AdminRole = AdminRole.ADMIN


class FirstAdminRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


# ===========================
# HELPERS
# ===========================


def get_client_ip(request: Request) -> Optional[str]:
    """Get client IP address from request"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return None


def _audit(
    session: AsyncSession,
    request: Request,
    admin: Principal,
    action: AdminActionType,
    target_user_id: str,
    details: Optional[dict] = None,
) -> None:
    crud.log_admin_action(
        session,
        admin_id=admin.user_id,
        action_type=action.value,
        target_user_id=target_user_id,
        details=json.dumps(details) if details is not None else None,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


async def _get_target(session: AsyncSession, user_id: str) -> Profile:
    profile = await crud.get_profile(session, user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


# ===========================
# USERS
# ===========================


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = None,
    status: str = Query("all", pattern="^(all|banned|locked|active|subscribed)$"),
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Paginated users, enriched with Stripe subscription status (best effort)

    Returns:
        {"users": [...], "pagination": {"page", "limit", "total", "totalPages"}}
    """
    profiles, total = await crud.list_profiles(session, page, limit, search, status)
    service = get_stripe_service()

    users = []
    for profile in profiles:
        data = crud.serialize_profile_admin(profile)
        summary = await service.get_subscription_summary(profile.stripe_subscription_id)
        data["subscription"] = summary
        data["isTrialing"] = bool(summary and summary["isTrialing"])
        data["nextPaymentDate"] = summary["nextPaymentDate"] if summary else None
        users.append(data)

    return {
        "users": users,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    profile = await _get_target(session, user_id)
    service = get_stripe_service()

    history = await crud.get_subscription_history(session, user_id, limit=100)
    transactions = await CreditService.get_transactions(session, user_id, limit=50)

    return {
        "profile": crud.serialize_profile_admin(profile),
        "subscriptionHistory": [crud.serialize_subscription_history(h) for h in history],
        "creditTransactions": [serialize_transaction(t) for t in transactions],
        "stripeSubscription": await service.get_subscription_summary(profile.stripe_subscription_id),
        "paymentHistory": await service.list_invoices(profile.stripe_customer_id),
        "modelsCount": await crud.count_user_models(session, user_id),
    }


@router.post("/users/{user_id}/ban")
async def ban_user(
    user_id: str,
    request: Request,
    body: Optional[ReasonRequest] = None,
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    profile = await _get_target(session, user_id)
    reason = (body.reason if body else None) or DEFAULT_REASON

    profile.is_banned = True
    profile.banned_reason = reason
    profile.banned_at = datetime.now(UTC)
    _audit(session, request, admin, AdminActionType.BAN, user_id, {"reason": reason})
    await session.commit()

    logger.warning(f"🚫 User {user_id} banned by {admin.user_id}: {reason}")
    return {"success": True, "message": "User banned successfully"}


@router.post("/users/{user_id}/unban")
async def unban_user(
    user_id: str,
    request: Request,
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    profile = await _get_target(session, user_id)

    profile.is_banned = False
    profile.banned_reason = None
    profile.banned_at = None
    _audit(session, request, admin, AdminActionType.UNBAN, user_id)
    await session.commit()

    logger.info(f"User {user_id} unbanned by {admin.user_id}")
    return {"success": True, "message": "User unbanned successfully"}


@router.post("/users/{user_id}/lock")
async def lock_user(
    user_id: str,
    request: Request,
    body: Optional[ReasonRequest] = None,
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    profile = await _get_target(session, user_id)
    reason = (body.reason if body else None) or DEFAULT_REASON

    profile.is_locked = True
    profile.locked_reason = reason
    profile.locked_at = datetime.now(UTC)
    _audit(session, request, admin, AdminActionType.LOCK, user_id, {"reason": reason})
    await session.commit()

    logger.warning(f"🔒 User {user_id} locked by {admin.user_id}: {reason}")
    return {"success": True, "message": "User locked successfully"}


@router.post("/users/{user_id}/unlock")
async def unlock_user(
    user_id: str,
    request: Request,
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    profile = await _get_target(session, user_id)

    profile.is_locked = False
    profile.locked_reason = None
    profile.locked_at = None
    _audit(session, request, admin, AdminActionType.UNLOCK, user_id)
    await session.commit()

    logger.info(f"User {user_id} unlocked by {admin.user_id}")
    return {"success": True, "message": "User unlocked successfully"}


@router.post("/users/{user_id}/update")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    request: Request,
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Update credits and/or plan

    A credit change is written to the ledger as an admin_adjustment.
    """
    profile = await _get_target(session, user_id)
    changes: Dict[str, Any] = {}

    if "subscription_plan" in body.model_fields_set:
        plan = body.subscription_plan
        if plan is not None and plan not in {p.value for p in PlanType}:
            raise HTTPException(status_code=400, detail={"error": f"Unknown subscription plan: {plan}"})
        profile.subscription_plan = plan
        changes["subscription_plan"] = plan

    if body.credits is not None:
        await CreditService.set_balance(session, user_id, body.credits, admin_id=admin.user_id)
        changes["credits"] = body.credits

    if not changes:
        raise HTTPException(status_code=400, detail={"error": "Nothing to update"})

    _audit(session, request, admin, AdminActionType.UPDATE_USER, user_id, changes)
    await session.commit()
    await session.refresh(profile)

    logger.info(f"User {user_id} updated by {admin.user_id}: {changes}")
    return {"success": True, "message": "User updated successfully", "user": crud.serialize_profile_admin(profile)}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    admin: Principal = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Delete the profile (cascades) and the Supabase auth user"""
    profile = await _get_target(session, user_id)
    if profile.id == admin.user_id:
        raise HTTPException(status_code=400, detail={"error": "Cannot delete your own account"})

    email = profile.email
    await session.delete(profile)
    _audit(session, request, admin, AdminActionType.DELETE_USER, user_id, {"email": email})
    await session.commit()

    if supabase_service.is_configured:
        try:
            await supabase_service.delete_auth_user(user_id)
        except AuthApiError as e:
            logger.error(f"Profile {user_id} deleted but Supabase auth user removal failed: {e}")

    logger.warning(f"🗑️ User {user_id} ({email}) deleted by {admin.user_id}")
    return {"success": True, "message": "User deleted successfully"}


# ===========================
# ADMINS
# ===========================


@router.get("/admins")
async def list_admins(
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    admins = await crud.list_admins(session)
    return {
        "admins": [
            {
                "id": a.id,
                "email": a.email,
                "admin_role": a.admin_role,
                "created_at": a.created_at.isoformat() if a.created_at else None,
            }
            for a in admins
        ]
    }


@router.post("/admins")
async def create_admin(
    body: CreateAdminRequest,
    request: Request,
    admin: Principal = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    if not body.email:
        raise HTTPException(status_code=400, detail={"error": "Email is required"})

    profile = await crud.get_profile_by_email(session, body.email)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")

    profile.is_admin = True
    profile.admin_role = body.admin_role.value
    _audit(
        session, request, admin, AdminActionType.CREATE_ADMIN, profile.id,
        {"email": profile.email, "admin_role": body.admin_role.value},
    )
    await session.commit()

    logger.info(f"👑 {profile.email} promoted to {body.admin_role.value} by {admin.user_id}")
    return {
        "success": True,
        "message": "Admin created successfully",
        "admin": {"id": profile.id, "email": profile.email},
    }


@router.delete("/admins/{admin_id}")
async def remove_admin(
    admin_id: str,
    request: Request,
    admin: Principal = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    first = await crud.get_first_super_admin(session)
    if first is not None and first.id == admin_id:
        raise HTTPException(status_code=403, detail="Cannot remove super admin status from the first admin")

    profile = await _get_target(session, admin_id)
    profile.is_admin = False
    profile.admin_role = None
    _audit(session, request, admin, AdminActionType.REMOVE_ADMIN, admin_id, {"email": profile.email})
    await session.commit()

    return {"success": True, "message": "Admin status removed successfully"}


# ===========================
# STATS & BOOTSTRAP
# ===========================


@router.get("/stats")
async def get_stats(
    admin: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    return await crud.get_admin_stats(session)


@router.post("/check-first-admin")
@limiter.limit("5/minute")
async def check_first_admin(
    request: Request,  # Required by limiter
    body: FirstAdminRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    First-admin bootstrap and admin sign-in check

    Only FIRST_ADMIN_EMAIL is accepted. With no admins yet the account is
    created (or its password reset) and made super admin; afterwards the
    credentials are verified against Supabase Auth.
    """
    email = (body.email or "").strip().lower()
    if email != FIRST_ADMIN_EMAIL.lower():
        raise HTTPException(status_code=400, detail={"error": "Invalid admin email"})
    if not body.password:
        raise HTTPException(status_code=400, detail={"error": "Password is required"})

    try:
        if await crud.count_admins(session) == 0:
            existing = await crud.get_profile_by_email(session, email)
            if existing is not None:
                user_id = existing.id
                try:
                    await supabase_service.update_auth_user_password(user_id, body.password)
                except AuthApiError as e:
                    logger.warning(f"Could not update first admin password: {e}")
            else:
                user_id = await supabase_service.create_auth_user(email, body.password)

            profile, _ = await crud.get_or_create_profile(session, user_id, email)
            profile.is_admin = True
            profile.admin_role = AdminRole.SUPER_ADMIN.value
            await session.commit()

            logger.warning(f"👑 First admin created: {email} ({user_id})")
            return {"success": True, "isFirstAdmin": True, "message": "First admin created successfully"}

        user_id = await supabase_service.sign_in(email, body.password)
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid credentials")

        profile = await crud.get_profile(session, user_id)
        if profile is None or not profile.is_admin:
            raise HTTPException(status_code=403, detail="Admin access required")

        return {
            "success": True,
            "isFirstAdmin": False,
            "user": {"id": profile.id, "email": profile.email, "admin_role": profile.admin_role},
        }

    except HTTPException:
        raise
    except FanovaError as e:
        raise to_http_exception(e)
    except AuthApiError as e:
        logger.error(f"Supabase auth error during first-admin check: {e}")
        raise HTTPException(status_code=502, detail="Authentication provider error")
    except Exception as e:
        logger.exception(f"Error checking first admin: {e}")
        raise HTTPException(status_code=500, detail="Failed to check admin")

"""
Profile API Endpoints
Onboarding (ensure-profile), profile, credit ledger and subscription history
"""

from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import Principal, get_current_principal
from src.database import crud
from src.database.engine import get_session
from src.services.credit_service import CreditService, serialize_transaction
from src.services.email_service import email_service

# Create routers
auth_router = APIRouter(prefix="/auth", tags=["auth"])
router = APIRouter(prefix="/profile", tags=["profile"])


@auth_router.post("/ensure-profile")
async def ensure_profile(
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Make sure the signed-in user has a profile (called right after signup/login)

    New profiles start with 0 credits, no plan and a referral code.
    The welcome email is sent after the response.

    Returns:
        {"success": true, "profile": {...}, "created": true}
    """
    try:
        profile = principal.profile
        if not profile.referral_code:
            await crud.ensure_referral_code(session, profile)

        if principal.created and profile.email:
            background_tasks.add_task(
                email_service.send_welcome_email, profile.email, profile.full_name
            )
            logger.info(f"Welcome email queued for {profile.email}")

        return {
            "success": True,
            "profile": crud.serialize_profile(profile),
            "created": principal.created,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error ensuring profile for {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to ensure profile")


@router.get("")
async def get_profile(
    principal: Principal = Depends(get_current_principal),
) -> Dict[str, Any]:
    """
    Current user's profile

    Returns:
        {
            "success": true,
            "profile": {
                "id": "...",
                "email": "jane@example.com",
                "credits": 240,
                "subscription_plan": "essential",
                "subscription_start_date": "2025-01-01T00:00:00+00:00",
                "subscription_renewal_date": "2025-02-01T00:00:00+00:00",
                "monthly_credits_allocated": 250,
                ...
            }
        }
    """
    return {"success": True, "profile": crud.serialize_profile(principal.profile)}


@router.get("/transactions")
async def get_transactions(
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Credit ledger, newest first"""
    try:
        transactions = await CreditService.get_transactions(session, principal.user_id, limit)
        return {
            "success": True,
            "transactions": [serialize_transaction(t) for t in transactions],
        }
    except Exception as e:
        logger.exception(f"Error fetching transactions for {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch transactions")


@router.get("/subscription-history")
async def get_subscription_history(
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        history = await crud.get_subscription_history(session, principal.user_id, limit)
        return {
            "success": True,
            "history": [crud.serialize_subscription_history(h) for h in history],
        }
    except Exception as e:
        logger.exception(f"Error fetching subscription history for {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch subscription history")

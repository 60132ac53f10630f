"""
Referral API Endpoints
Own referral link, statistics and processing a signup referral code
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.config import FRONTEND_URL
from config.referral_config import build_referral_link
from src.api.auth import Principal, get_current_principal
from src.api.rate_limit import limiter
from src.core.exceptions import FanovaError, to_http_exception
from src.database import crud
from src.database.engine import get_session
from src.services.referral_service import ReferralService

# Create router
router = APIRouter(prefix="/referrals", tags=["referrals"])


class ProcessReferralRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    referral_code: Optional[str] = Field(None, alias="referralCode")


@router.get("/my-link")
async def get_my_link(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Own referral code and link (the code is created on first request)

    Returns:
        {
            "success": true,
            "referralCode": "AB12CD34",
            "referralLink": "https://app.fanova.com/register?ref=AB12CD34",
            "referralCount": 3
        }
    """
    try:
        code = await crud.ensure_referral_code(session, principal.profile)
        stats = await crud.get_referral_stats(session, principal.user_id)

        return {
            "success": True,
            "referralCode": code,
            "referralLink": build_referral_link(FRONTEND_URL, code),
            "referralCount": stats["total_referrals"],
        }

    except Exception as e:
        logger.exception(f"Error fetching referral link for {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch referral link")


@router.get("/stats")
async def get_stats(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        stats = await crud.get_referral_stats(session, principal.user_id)
        return {
            "success": True,
            "totalReferrals": stats["total_referrals"],
            "totalCreditsEarned": stats["total_credits_earned"],
            "referrals": stats["referrals"],
        }
    except Exception as e:
        logger.exception(f"Error fetching referral stats for {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch referral stats")


@router.post("/process")
@limiter.limit("10/minute")
async def process_referral(
    request: Request,  # Required by limiter
    body: ProcessReferralRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Apply the referral code the user signed up with

    Both users receive the referral bonus once. Without a code only the
    user's own code is ensured.

    Returns:
        {"success": true, "message": "...", "creditsAwarded": 20}
    """
    try:
        result = await ReferralService.process_referral(session, principal.user_id, body.referral_code)
        return {
            "success": True,
            "processed": result.processed,
            "message": result.message,
            "creditsAwarded": result.credits_awarded,
        }

    except FanovaError as e:
        logger.info(f"Referral rejected for {principal.user_id}: {e.message}")
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error processing referral for {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to process referral")

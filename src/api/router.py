"""
FastAPI Router for the Fanova API
"""

from typing import Any, Dict

from fastapi import APIRouter

# Import sub-routers
from src.api.admin import router as admin_router
from src.api.ai import router as ai_router
from src.api.jobs import router as jobs_router
from src.api.models import router as models_router
from src.api.nsfw import router as nsfw_router
from src.api.profile import auth_router, router as profile_router
from src.api.referrals import router as referrals_router
from src.api.stripe_checkout import router as stripe_router


# Main router
router = APIRouter()

# Include sub-routers (they already carry their prefixes)
router.include_router(auth_router)  # Onboarding (ensure-profile)
router.include_router(profile_router)  # Profile, ledger, subscription history
router.include_router(models_router)  # Model personas, images, generation
router.include_router(jobs_router)  # Generation job status
router.include_router(ai_router)  # Reference analysis, prompt enhancement
router.include_router(nsfw_router)  # Wavespeed image edit
router.include_router(stripe_router)  # Checkout, portal, webhook, sync
router.include_router(referrals_router)  # Referral links and processing
router.include_router(admin_router)  # Admin console


@router.get("/health")
async def api_health() -> Dict[str, Any]:
    """API health check"""
    return {"status": "ok", "service": "fanova-api"}

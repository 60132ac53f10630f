"""
Pricing configuration for Fanova plans and credit costs

All prices in GBP. This module is the single source of credit costs used by
the credit service and the public /stripe/plans endpoint.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from src.database.models import PlanType


@dataclass(frozen=True)
class PlanPricing:
    """Pricing and entitlements for a subscription plan"""

    plan: str
    name: str
    monthly_price: float  # GBP
    monthly_credits: int
    nsfw_cost: Optional[int]  # None = NSFW not available
    has_watermark: bool
    trial_days: int = 0
    features: List[str] = field(default_factory=list)


CURRENCY = "GBP"

# Credit costs
STANDARD_IMAGE_COST = 10  # SFW image, same for all plans
BATCH_GENERATION_COST = 25  # 3 images, overrides per-image pricing
BATCH_SIZE = 3
ALLOWED_IMAGE_COUNTS = (1, BATCH_SIZE)  # single image or batch
HIGH_RESOLUTION_ADDON = 5
PRIORITY_ADDON = 5
MODEL_CREATION_COST = 50
MODEL_RETRAINING_COST = 25

# Users without a plan get their first few SFW images for free (counted per image)
FREE_GENERATIONS_LIMIT = 3


PLANS: Dict[str, PlanPricing] = {
    PlanType.BASE.value: PlanPricing(
        plan=PlanType.BASE.value,
        name="Base Plan",
        monthly_price=9.99,
        monthly_credits=50,
        nsfw_cost=None,
        has_watermark=True,
        features=[
            "Basic AI model creation",
            "Watermarked images",
            "Standard generation speed",
        ],
    ),
    PlanType.ESSENTIAL.value: PlanPricing(
        plan=PlanType.ESSENTIAL.value,
        name="Essential Plan",
        monthly_price=19.99,
        monthly_credits=250,
        nsfw_cost=30,
        has_watermark=False,
        features=[
            "No watermarks",
            "24/7 customer support",
            "Faster generation",
            "NSFW images (30 credits)",
            "25 SFW images per month",
        ],
    ),
    PlanType.ULTIMATE.value: PlanPricing(
        plan=PlanType.ULTIMATE.value,
        name="Ultimate Plan",
        monthly_price=29.99,
        monthly_credits=500,
        nsfw_cost=15,
        has_watermark=False,
        trial_days=1,
        features=[
            "No watermarks",
            "Priority 24/7 support",
            "Fastest generation",
            "NSFW images (15 credits)",
            "50 SFW images per month",
            "1 day free trial",
        ],
    ),
}

# Credit recharge packs (display only)
CREDIT_RECHARGES = [
    {"id": "recharge-50", "credits": 50, "price": 4.99, "currency": CURRENCY},
    {"id": "recharge-100", "credits": 100, "price": 9.99, "currency": CURRENCY},
    {"id": "recharge-250", "credits": 250, "price": 19.99, "currency": CURRENCY},
]


# Helper functions
def get_plan(plan: Optional[str]) -> Optional[PlanPricing]:
    """
    Get plan details

    Args:
        plan: Plan type or None

    Returns:
        PlanPricing or None for no plan / unknown plan
    """
    if not plan:
        return None
    return PLANS.get(plan)


def get_plan_credits(plan: Optional[str]) -> int:
    """Monthly credits for a plan (unknown plans fall back to base)"""
    pricing = get_plan(plan) or PLANS[PlanType.BASE.value]
    return pricing.monthly_credits


def can_generate_nsfw(plan: Optional[str]) -> bool:
    """Check if plan includes NSFW generation"""
    pricing = get_plan(plan)
    return pricing is not None and pricing.nsfw_cost is not None


def should_add_watermark(plan: Optional[str]) -> bool:
    """Images are watermarked for base plan and for users without a plan"""
    pricing = get_plan(plan)
    return pricing.has_watermark if pricing else True


def get_public_pricing() -> dict:
    """Pricing table for the frontend"""
    return {
        "currency": CURRENCY,
        "plans": [
            {
                "id": p.plan,
                "name": p.name,
                "price": p.monthly_price,
                "monthlyCredits": p.monthly_credits,
                "nsfwCost": p.nsfw_cost,
                "hasWatermark": p.has_watermark,
                "trialDays": p.trial_days,
                "features": p.features,
            }
            for p in PLANS.values()
        ],
        "costs": {
            "standardImage": STANDARD_IMAGE_COST,
            "batchGeneration": BATCH_GENERATION_COST,
            "highResolution": HIGH_RESOLUTION_ADDON,
            "priority": PRIORITY_ADDON,
            "modelCreation": MODEL_CREATION_COST,
            "modelRetraining": MODEL_RETRAINING_COST,
        },
        "freeGenerations": FREE_GENERATIONS_LIMIT,
        "recharges": CREDIT_RECHARGES,
    }

"""
Create Stripe products and prices for the Fanova plans

One product and one recurring monthly GBP price per plan. Existing products
are reused (matched by metadata.plan_type), a price is only created when no
active price with the same amount exists. Mappings are upserted into
stripe_price_mappings.

Usage:
    python scripts/setup_stripe_products.py [--dry-run]
"""
import argparse
import asyncio
import sys
from decimal import Decimal
from typing import Optional

import stripe
from loguru import logger

from config.config import STRIPE_SECRET_KEY
from config.logging import setup_logging
from config.pricing import CURRENCY, PLANS, PlanPricing
from src.database.crud import upsert_price_mapping
from src.database.engine import dispose_engine, get_session_maker


def find_product(plan: str) -> Optional[dict]:
    """Active product tagged with this plan_type"""
    for product in stripe.Product.list(active=True, limit=100).auto_paging_iter():
        if (product.get("metadata") or {}).get("plan_type") == plan:
            return product
    return None


def find_price(product_id: str, unit_amount: int, currency: str) -> Optional[dict]:
    prices = stripe.Price.list(product=product_id, active=True, limit=100)
    for price in prices.auto_paging_iter():
        recurring = price.get("recurring") or {}
        if (
            price["unit_amount"] == unit_amount
            and price["currency"] == currency
            and recurring.get("interval") == "month"
        ):
            return price
    return None


def ensure_product_and_price(pricing: PlanPricing, dry_run: bool) -> Optional[dict]:
    currency = CURRENCY.lower()
    unit_amount = int(round(pricing.monthly_price * 100))  # pence

    product = find_product(pricing.plan)
    if product:
        logger.info(f"Product exists for {pricing.plan}: {product['id']}")
    elif dry_run:
        logger.info(f"[dry-run] Would create product '{pricing.name}'")
    else:
        product = stripe.Product.create(
            name=f"Fanova {pricing.name}",
            metadata={
                "plan_type": pricing.plan,
                "monthly_credits": str(pricing.monthly_credits),
                "features": "|".join(pricing.features),
            },
        )
        logger.info(f"Created product {product['id']} for {pricing.plan}")

    price = find_price(product["id"], unit_amount, currency) if product else None
    if price:
        logger.info(f"Price exists for {pricing.plan}: {price['id']}")
    elif dry_run:
        logger.info(
            f"[dry-run] Would create price {unit_amount / 100:.2f} {currency.upper()}/month"
            + (f" with {pricing.trial_days} day trial" if pricing.trial_days else "")
        )
        return None
    else:
        recurring = {"interval": "month"}
        if pricing.trial_days:
            recurring["trial_period_days"] = pricing.trial_days
        price = stripe.Price.create(
            product=product["id"],
            unit_amount=unit_amount,
            currency=currency,
            recurring=recurring,
            metadata={"plan_type": pricing.plan, "monthly_credits": str(pricing.monthly_credits)},
        )
        logger.info(f"Created price {price['id']} for {pricing.plan}")

    return {"product_id": product["id"], "price_id": price["id"], "currency": currency}


async def setup_products(dry_run: bool) -> None:
    logger.info(f"Stripe mode: {'TEST' if '_test_' in STRIPE_SECRET_KEY else 'LIVE'}")

    session_maker = get_session_maker()
    async with session_maker() as session:
        for pricing in PLANS.values():
            ids = ensure_product_and_price(pricing, dry_run)
            if ids is None:
                continue

            if dry_run:
                logger.info(f"[dry-run] Would map {pricing.plan} -> {ids['price_id']}")
                continue

            await upsert_price_mapping(
                session,
                plan_type=pricing.plan,
                stripe_price_id=ids["price_id"],
                stripe_product_id=ids["product_id"],
                amount=Decimal(str(pricing.monthly_price)),
                currency=ids["currency"],
                credits=pricing.monthly_credits,
            )
            logger.info(f"Saved mapping {pricing.plan} -> {ids['price_id']}")


async def main():
    parser = argparse.ArgumentParser(description="Create Stripe products and prices for Fanova plans")
    parser.add_argument("--dry-run", action="store_true", help="Only show what would be created")
    args = parser.parse_args()

    setup_logging()

    if not STRIPE_SECRET_KEY.startswith("sk_"):
        logger.error("STRIPE_SECRET_KEY is missing or invalid (should start with 'sk_')")
        sys.exit(1)
    stripe.api_key = STRIPE_SECRET_KEY

    try:
        await setup_products(args.dry_run)
    except stripe.StripeError as e:
        logger.error(f"Stripe error: {e}")
        raise
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())

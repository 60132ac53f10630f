"""
Verify stripe_price_mappings against Stripe

Every mapping must point to an active recurring price whose amount and
currency match the row. Exits with status 1 when anything is off.
"""
import asyncio
import sys
from decimal import Decimal

import stripe
from loguru import logger

from config.config import STRIPE_SECRET_KEY
from config.logging import setup_logging
from src.database.crud import list_price_mappings
from src.database.engine import dispose_engine, get_session_maker


async def verify_mappings() -> int:
    """Returns number of problems found"""
    problems = 0

    session_maker = get_session_maker()
    async with session_maker() as session:
        mappings = await list_price_mappings(session)

    if not mappings:
        logger.warning("No price mappings found, run scripts/setup_stripe_products.py")
        return 1

    for mapping in mappings:
        try:
            price = stripe.Price.retrieve(mapping.stripe_price_id)
        except stripe.InvalidRequestError:
            logger.error(f"{mapping.plan_type}: price {mapping.stripe_price_id} not found in Stripe")
            problems += 1
            continue

        expected_amount = int(Decimal(mapping.amount) * 100)
        issues = []
        if not price.get("active"):
            issues.append("price inactive")
        if price["unit_amount"] != expected_amount:
            issues.append(f"amount {price['unit_amount']} != {expected_amount}")
        if price["currency"] != mapping.currency:
            issues.append(f"currency {price['currency']} != {mapping.currency}")
        if (price.get("recurring") or {}).get("interval") != "month":
            issues.append("not a monthly price")

        if issues:
            logger.error(f"{mapping.plan_type}: {', '.join(issues)}")
            problems += 1
        else:
            logger.info(
                f"{mapping.plan_type}: {mapping.stripe_price_id} OK "
                f"({mapping.amount} {mapping.currency.upper()}, {mapping.credits} credits)"
            )

    return problems


async def main():
    setup_logging()

    if not STRIPE_SECRET_KEY:
        logger.error("STRIPE_SECRET_KEY not set")
        sys.exit(1)
    stripe.api_key = STRIPE_SECRET_KEY

    try:
        problems = await verify_mappings()
    finally:
        await dispose_engine()

    if problems:
        logger.error(f"{problems} problem(s) found")
        sys.exit(1)
    logger.info("All price mappings verified")


if __name__ == "__main__":
    asyncio.run(main())

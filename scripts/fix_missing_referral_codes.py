"""
Backfill referral codes for profiles that don't have one

Safe to run multiple times - only profiles with NULL referral_code are touched.
"""
import asyncio

from sqlalchemy import func, select
from loguru import logger

from config.logging import setup_logging
from src.database.engine import dispose_engine, get_session_maker
from src.database.models import Profile
from src.database.crud import generate_referral_code


async def fix_missing_referral_codes():
    """Generate referral codes for profiles that don't have one"""

    session_maker = get_session_maker()
    async with session_maker() as session:
        stmt = select(Profile).where(Profile.referral_code.is_(None))
        result = await session.execute(stmt)
        profiles = list(result.scalars().all())

        if not profiles:
            logger.info("All profiles already have referral codes")
            return

        logger.info(f"Found {len(profiles)} profiles without referral code")

        for profile in profiles:
            profile.referral_code = await generate_referral_code(session)
            # Flush so the next uniqueness check sees this code
            await session.flush()
            logger.info(f"Generated referral code {profile.referral_code} for {profile.id} ({profile.email})")

        await session.commit()

        remaining = await session.scalar(
            select(func.count()).select_from(Profile).where(Profile.referral_code.is_(None))
        )
        if remaining:
            logger.warning(f"{remaining} profiles still without referral code")
        else:
            logger.info(f"Generated {len(profiles)} referral codes")


async def main():
    setup_logging()
    try:
        await fix_missing_referral_codes()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())

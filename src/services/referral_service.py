"""
Referral Service

Awards REFERRAL_CREDITS to both sides the first time a new user signs up
with someone's referral code.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.referral_config import REFERRAL_CREDITS, normalize_referral_code
from src.core.exceptions import InvalidReferralCodeError, SelfReferralError
from src.database import crud
from src.database.models import Referral, TransactionType
from src.services.credit_service import CreditService


@dataclass
class ReferralResult:
    processed: bool
    message: str
    credits_awarded: int = 0
    referrer_id: Optional[str] = None


class ReferralService:
    """Referral processing"""

    @staticmethod
    async def process_referral(
        session: AsyncSession,
        user_id: str,
        referral_code: Optional[str],
    ) -> ReferralResult:
        """
        Process a referral for a newly registered user

        Credits for both users, referred_by and the referral row are written
        in one transaction. The unique referred_id constraint turns a
        concurrent duplicate into "already processed".

        Args:
            session: Database session
            user_id: Referred (new) user id
            referral_code: Code from the signup link, may be empty

        Returns:
            ReferralResult

        Raises:
            InvalidReferralCodeError: Unknown code
            SelfReferralError: Own code used
        """
        profile = await crud.get_profile(session, user_id)
        if profile is None:
            raise ValueError(f"Profile {user_id} not found")

        code = normalize_referral_code(referral_code)

        if not code:
            await crud.ensure_referral_code(session, profile)
            return ReferralResult(processed=False, message="No referral code provided")

        referrer = await crud.get_profile_by_referral_code(session, code)
        if referrer is None:
            raise InvalidReferralCodeError("Invalid referral code")

        if referrer.id == user_id:
            raise SelfReferralError("Cannot use your own referral code")

        if await crud.get_referral_by_referred(session, user_id):
            return ReferralResult(processed=False, message="Referral already processed")

        try:
            await CreditService.add_credits(
                session,
                referrer.id,
                REFERRAL_CREDITS,
                TransactionType.REFERRAL.value,
                description="Referral bonus - referred new user",
                metadata={"referred_user_id": user_id, "type": "referrer"},
                transaction_id=f"referral:referrer:{user_id}",
                commit=False,
            )
            await CreditService.add_credits(
                session,
                user_id,
                REFERRAL_CREDITS,
                TransactionType.REFERRAL.value,
                description="Referral bonus - signed up with referral code",
                metadata={"referrer_id": referrer.id, "type": "referred"},
                transaction_id=f"referral:referred:{user_id}",
                commit=False,
            )

            profile.referred_by = referrer.id
            session.add(Referral(
                referrer_id=referrer.id,
                referred_id=user_id,
                referral_code=code,
                credits_awarded_referrer=REFERRAL_CREDITS,
                credits_awarded_referred=REFERRAL_CREDITS,
            ))
            await session.commit()

        except IntegrityError:
            await session.rollback()
            logger.info(f"Referral for {user_id} already recorded by a concurrent request")
            return ReferralResult(processed=False, message="Referral already processed")

        logger.info(f"🎉 Referral processed: {referrer.id} -> {user_id} (+{REFERRAL_CREDITS} each)")

        return ReferralResult(
            processed=True,
            message=f"Referral processed successfully! You both received {REFERRAL_CREDITS} credits.",
            credits_awarded=REFERRAL_CREDITS,
            referrer_id=referrer.id,
        )

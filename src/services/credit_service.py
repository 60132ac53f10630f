"""
Credit Service

Centralized credit checks, deductions and grants for Fanova.

Features:
- Plan-aware cost calculation (SFW / NSFW / batch / add-ons)
- Free tier for users without a plan
- Atomic conditional decrement + ledger row in one transaction
- Idempotent grants via unique transaction_id
"""

import json
from dataclasses import dataclass
from typing import Optional, Dict, List

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.pricing import (
    STANDARD_IMAGE_COST,
    BATCH_GENERATION_COST,
    HIGH_RESOLUTION_ADDON,
    PRIORITY_ADDON,
    FREE_GENERATIONS_LIMIT,
    get_plan,
    get_plan_credits,
)
from src.core.exceptions import (
    InsufficientCreditsError,
    FreeLimitReachedError,
    NsfwNotAllowedError,
)
from src.database.models import Profile, CreditTransaction, TransactionType


@dataclass
class DeductionResult:
    """Outcome of a generation charge"""

    success: bool
    cost: int
    remaining_credits: int
    is_free: bool = False
    transaction_id: Optional[str] = None
    num_images: int = 1  # images covered by this charge


class CreditService:
    """Service for managing user credits"""

    @staticmethod
    def calculate_image_cost(
        plan: Optional[str],
        is_nsfw: bool = False,
        options: Optional[Dict] = None,
    ) -> int:
        """
        Calculate credit cost of one generation request

        Args:
            plan: Subscription plan (None = no plan)
            is_nsfw: NSFW request
            options: {"batch", "high_resolution", "priority"}

        Returns:
            Cost in credits

        Raises:
            NsfwNotAllowedError: NSFW requested on a plan without NSFW
        """
        options = options or {}

        if is_nsfw:
            pricing = get_plan(plan)
            if pricing is None or pricing.nsfw_cost is None:
                raise NsfwNotAllowedError("NSFW images not available on this plan")
            cost = pricing.nsfw_cost
        else:
            cost = STANDARD_IMAGE_COST

        # Batch price is flat: 3 images, no add-ons
        if options.get("batch"):
            return BATCH_GENERATION_COST

        if options.get("high_resolution"):
            cost += HIGH_RESOLUTION_ADDON
        if options.get("priority"):
            cost += PRIORITY_ADDON

        return cost

    @staticmethod
    async def count_free_generations(session: AsyncSession, user_id: str) -> int:
        """Number of free images already used (one ledger row per image)"""
        stmt = select(func.count(CreditTransaction.id)).where(
            CreditTransaction.user_id == user_id,
            CreditTransaction.transaction_type == TransactionType.FREE_GENERATION.value,
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def get_balance(session: AsyncSession, user_id: str) -> int:
        stmt = select(Profile.credits).where(Profile.id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() or 0

    @staticmethod
    async def check_and_deduct_for_generation(
        session: AsyncSession,
        user_id: str,
        is_nsfw: bool = False,
        options: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
        num_images: int = 1,
    ) -> DeductionResult:
        """
        Gate and charge a generation request

        Users without a plan get FREE_GENERATIONS_LIMIT free SFW images; a
        request is capped to the free images left (see DeductionResult.num_images).
        Everyone else is charged with a single conditional UPDATE, so two
        concurrent requests can never overspend the balance.

        Args:
            session: Database session
            user_id: Profile id
            is_nsfw: NSFW request
            options: Cost options (batch, high_resolution, priority)
            idempotency_key: Ledger transaction_id for the charge
            num_images: Images requested

        Returns:
            DeductionResult

        Raises:
            NsfwNotAllowedError: NSFW without an eligible plan
            FreeLimitReachedError: Free tier used up
            InsufficientCreditsError: Balance too low (nothing charged)
        """
        options = options or {}

        profile = await session.get(Profile, user_id)
        if profile is None:
            raise ValueError(f"Profile {user_id} not found")

        plan = profile.subscription_plan

        if not plan:
            if is_nsfw:
                raise NsfwNotAllowedError(
                    "NSFW images require a subscription plan. "
                    "Please subscribe to Essential or Ultimate plan."
                )
            return await CreditService._use_free_generation(session, profile, options, num_images)

        cost = CreditService.calculate_image_cost(plan, is_nsfw, options)

        stmt = (
            update(Profile)
            .where(Profile.id == user_id, Profile.credits >= cost)
            .values(credits=Profile.credits - cost)
        )
        result = await session.execute(stmt)

        if result.rowcount == 0:
            await session.rollback()
            current = await CreditService.get_balance(session, user_id)
            logger.info(f"Insufficient credits for user {user_id}: need {cost}, have {current}")
            raise InsufficientCreditsError(
                f"Insufficient credits. You need {cost} credits but only have {current}."
            )

        remaining = await CreditService.get_balance(session, user_id)

        description = "Image generation"
        if is_nsfw:
            description += " (NSFW)"
        if options.get("batch"):
            description += " (Batch)"

        session.add(CreditTransaction(
            user_id=user_id,
            amount=-cost,
            transaction_type=TransactionType.GENERATION.value,
            description=description,
            metadata_json=json.dumps({"plan": plan, "is_nsfw": is_nsfw, "options": options}),
            balance_after=remaining,
            transaction_id=idempotency_key,
        ))
        await session.commit()

        logger.info(f"💳 Charged {cost} credits to user {user_id} (plan: {plan}), balance {remaining}")

        return DeductionResult(
            success=True,
            cost=cost,
            remaining_credits=remaining,
            is_free=False,
            transaction_id=idempotency_key,
            num_images=num_images,
        )

    @staticmethod
    async def _use_free_generation(
        session: AsyncSession, profile: Profile, options: Dict, num_images: int = 1
    ) -> DeductionResult:
        used = await CreditService.count_free_generations(session, profile.id)
        left = FREE_GENERATIONS_LIMIT - used
        if left <= 0:
            raise FreeLimitReachedError(
                f"You have used your {FREE_GENERATIONS_LIMIT} free images. "
                "Please subscribe to a plan to continue generating images."
            )

        granted = min(max(num_images, 1), left)

        # One key per free image: a concurrent request for the same slot fails at commit
        keys = [f"free_generation:{profile.id}:{slot}" for slot in range(used + 1, used + granted + 1)]
        for key in keys:
            session.add(CreditTransaction(
                user_id=profile.id,
                amount=0,
                transaction_type=TransactionType.FREE_GENERATION.value,
                description=f"Free image generation (first {FREE_GENERATIONS_LIMIT} images)",
                metadata_json=json.dumps({"plan": None, "options": options, "requested_images": num_images}),
                balance_after=profile.credits,
                transaction_id=key,
            ))

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise FreeLimitReachedError(
                f"You have used your {FREE_GENERATIONS_LIMIT} free images. "
                "Please subscribe to a plan to continue generating images."
            )

        logger.info(
            f"🎁 Free images {used + 1}-{used + granted}/{FREE_GENERATIONS_LIMIT} "
            f"for user {profile.id} (requested {num_images})"
        )

        return DeductionResult(
            success=True,
            cost=0,
            remaining_credits=profile.credits,
            is_free=True,
            transaction_id=keys[0],
            num_images=granted,
        )

    @staticmethod
    async def add_credits(
        session: AsyncSession,
        user_id: str,
        amount: int,
        transaction_type: str,
        description: Optional[str] = None,
        metadata: Optional[Dict] = None,
        transaction_id: Optional[str] = None,
        commit: bool = True,
    ) -> Optional[CreditTransaction]:
        """
        Grant credits (atomic increment + ledger row)

        Args:
            session: Database session
            user_id: Profile id
            amount: Credits to add (> 0)
            transaction_type: TransactionType value
            description: Human-readable description
            metadata: Additional metadata dict
            transaction_id: Unique transaction ID for idempotency
            commit: Commit here; False lets the caller group more writes

        Returns:
            CreditTransaction, or None if transaction_id was already used
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        if transaction_id:
            stmt = select(CreditTransaction.id).where(
                CreditTransaction.transaction_id == transaction_id
            )
            if (await session.execute(stmt)).scalar_one_or_none() is not None:
                logger.debug(f"Transaction {transaction_id} already exists, skipping")
                return None

        await session.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(credits=Profile.credits + amount)
        )
        balance = await CreditService.get_balance(session, user_id)

        transaction = CreditTransaction(
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            description=description or f"Credits added ({transaction_type})",
            metadata_json=json.dumps(metadata) if metadata else None,
            balance_after=balance,
            transaction_id=transaction_id,
        )
        session.add(transaction)

        if commit:
            try:
                await session.commit()
            except IntegrityError:
                # Same transaction_id committed concurrently
                await session.rollback()
                logger.info(f"Transaction {transaction_id} raced with a duplicate, skipping")
                return None

        logger.info(f"✅ Added {amount} credits to user {user_id} ({transaction_type}), balance {balance}")
        return transaction

    @staticmethod
    async def refund(
        session: AsyncSession,
        user_id: str,
        amount: int,
        reason: str,
        transaction_id: Optional[str] = None,
    ) -> Optional[CreditTransaction]:
        """
        Give back credits charged for a generation that failed

        Returns:
            CreditTransaction, or None for zero amount / duplicate refund
        """
        if amount <= 0:
            return None

        logger.warning(f"↩️ Refunding {amount} credits to user {user_id}: {reason}")
        return await CreditService.add_credits(
            session,
            user_id,
            amount,
            TransactionType.REFUND.value,
            description=f"Refund: {reason}",
            transaction_id=transaction_id,
        )

    @staticmethod
    async def allocate_plan_credits(
        session: AsyncSession,
        user_id: str,
        plan: str,
        transaction_id: Optional[str] = None,
        commit: bool = True,
    ) -> Optional[CreditTransaction]:
        """
        Grant the plan's monthly credits

        Returns:
            CreditTransaction, or None if this allocation was already made
        """
        credits = get_plan_credits(plan)

        transaction = await CreditService.add_credits(
            session,
            user_id,
            credits,
            TransactionType.SUBSCRIPTION.value,
            description=f"Monthly credits for {plan} plan",
            metadata={"plan": plan},
            transaction_id=transaction_id,
            commit=False,
        )
        if transaction is None:
            return None

        await session.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(monthly_credits_allocated=credits)
        )

        if commit:
            await session.commit()

        return transaction

    @staticmethod
    async def set_balance(
        session: AsyncSession,
        user_id: str,
        new_balance: int,
        admin_id: str,
    ) -> Optional[CreditTransaction]:
        """
        Admin override of the balance (caller commits)

        Writes the difference as an admin_adjustment ledger row.

        Returns:
            CreditTransaction, or None when the balance is unchanged
        """
        if new_balance < 0:
            raise ValueError("Credits cannot be negative")

        current = await CreditService.get_balance(session, user_id)
        delta = new_balance - current
        if delta == 0:
            return None

        await session.execute(
            update(Profile).where(Profile.id == user_id).values(credits=new_balance)
        )

        transaction = CreditTransaction(
            user_id=user_id,
            amount=delta,
            transaction_type=TransactionType.ADMIN_ADJUSTMENT.value,
            description=f"Admin adjustment ({current} -> {new_balance})",
            metadata_json=json.dumps({"admin_id": admin_id}),
            balance_after=new_balance,
        )
        session.add(transaction)
        return transaction

    @staticmethod
    async def get_transactions(
        session: AsyncSession, user_id: str, limit: int = 50
    ) -> List[CreditTransaction]:
        """User's ledger rows, newest first"""
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())


def serialize_transaction(transaction: CreditTransaction) -> dict:
    return {
        "id": transaction.id,
        "amount": transaction.amount,
        "transaction_type": transaction.transaction_type,
        "description": transaction.description,
        "metadata": json.loads(transaction.metadata_json) if transaction.metadata_json else {},
        "balance_after": transaction.balance_after,
        "created_at": transaction.created_at.isoformat() if transaction.created_at else None,
    }

"""
Tests for the referral system
Covers code handling, the one-time +20 bonus for both users, and stats
"""

import pytest
from sqlalchemy import select

from config.referral_config import REFERRAL_CREDITS
from src.core.exceptions import InvalidReferralCodeError, SelfReferralError
from src.database import crud
from src.database.models import CreditTransaction, Profile, Referral, TransactionType
from src.services.referral_service import ReferralService


async def fresh_profile(session, user_id) -> Profile:
    return await session.get(Profile, user_id, populate_existing=True)


# ============================================================================
# PROCESSING
# ============================================================================


@pytest.mark.asyncio
async def test_referral_awards_both_users(db_session, make_profile):
    referrer = await make_profile(credits=5, referral_code="REFER001")
    referred = await make_profile(credits=0)

    result = await ReferralService.process_referral(db_session, referred.id, "REFER001")

    assert result.processed is True
    assert result.credits_awarded == REFERRAL_CREDITS
    assert result.referrer_id == referrer.id

    assert (await fresh_profile(db_session, referrer.id)).credits == 5 + REFERRAL_CREDITS
    updated = await fresh_profile(db_session, referred.id)
    assert updated.credits == REFERRAL_CREDITS
    assert updated.referred_by == referrer.id

    rows = (await db_session.execute(
        select(CreditTransaction).where(
            CreditTransaction.transaction_type == TransactionType.REFERRAL.value
        )
    )).scalars().all()
    assert sorted(r.user_id for r in rows) == sorted([referrer.id, referred.id])


@pytest.mark.asyncio
async def test_code_is_normalized(db_session, make_profile):
    await make_profile(referral_code="ABCD1234")
    referred = await make_profile()

    result = await ReferralService.process_referral(db_session, referred.id, "  abcd1234 ")

    assert result.processed is True


@pytest.mark.asyncio
async def test_referral_processed_only_once(db_session, make_profile):
    referrer = await make_profile(referral_code="ONCEONLY")
    referred = await make_profile()

    await ReferralService.process_referral(db_session, referred.id, "ONCEONLY")
    again = await ReferralService.process_referral(db_session, referred.id, "ONCEONLY")

    assert again.processed is False
    assert again.message == "Referral already processed"
    assert (await fresh_profile(db_session, referrer.id)).credits == REFERRAL_CREDITS
    assert (await fresh_profile(db_session, referred.id)).credits == REFERRAL_CREDITS

    count = len((await db_session.execute(select(Referral))).scalars().all())
    assert count == 1


@pytest.mark.asyncio
async def test_invalid_code_rejected(db_session, make_profile):
    referred = await make_profile()

    with pytest.raises(InvalidReferralCodeError) as exc_info:
        await ReferralService.process_referral(db_session, referred.id, "NOPE0000")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_self_referral_rejected(db_session, make_profile):
    user = await make_profile(credits=0, referral_code="MYOWNCDE")

    with pytest.raises(SelfReferralError):
        await ReferralService.process_referral(db_session, user.id, "MYOWNCDE")

    assert (await fresh_profile(db_session, user.id)).credits == 0


@pytest.mark.asyncio
async def test_empty_code_only_ensures_own_code(db_session, make_profile):
    user = await make_profile(referral_code=None)

    result = await ReferralService.process_referral(db_session, user.id, "")

    assert result.processed is False
    assert result.message == "No referral code provided"
    assert (await fresh_profile(db_session, user.id)).referral_code


# ============================================================================
# STATS
# ============================================================================


@pytest.mark.asyncio
async def test_referral_stats(db_session, make_profile):
    referrer = await make_profile(referral_code="STATS001")
    first = await make_profile(email="first@example.com")
    second = await make_profile(email="second@example.com")

    await ReferralService.process_referral(db_session, first.id, "STATS001")
    await ReferralService.process_referral(db_session, second.id, "STATS001")

    stats = await crud.get_referral_stats(db_session, referrer.id)

    assert stats["total_referrals"] == 2
    assert stats["total_credits_earned"] == 2 * REFERRAL_CREDITS
    assert {r["referred_email"] for r in stats["referrals"]} == {
        "first@example.com",
        "second@example.com",
    }


@pytest.mark.asyncio
async def test_stats_empty_for_new_user(db_session, make_profile):
    user = await make_profile()

    stats = await crud.get_referral_stats(db_session, user.id)

    assert stats == {"total_referrals": 0, "total_credits_earned": 0, "referrals": []}

"""
CRUD operations for Fanova API

Async database operations using SQLAlchemy 2.0.
Credit balance changes live in src/services/credit_service.py.
"""

import logging
import random
from datetime import datetime, UTC
from typing import List, Optional, Tuple

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.referral_config import (
    REFERRAL_CODE_ALPHABET,
    REFERRAL_CODE_LENGTH,
    REFERRAL_CODE_MAX_ATTEMPTS,
)
from src.database.models import (
    Profile,
    PersonaModel,
    GeneratedImage,
    Referral,
    AdminAction,
    AdminRole,
    SubscriptionHistory,
    StripePriceMapping,
    StripeEvent,
    GenerationJob,
    JobStatus,
)

logger = logging.getLogger(__name__)

MODEL_IMAGES_LIMIT = 100


# ===========================
# PROFILE OPERATIONS
# ===========================


async def get_profile(session: AsyncSession, user_id: str) -> Optional[Profile]:
    """
    Get profile by id

    Args:
        session: Database session
        user_id: Profile (Supabase auth user) id

    Returns:
        Profile or None
    """
    return await session.get(Profile, user_id)


async def get_profile_by_email(session: AsyncSession, email: str) -> Optional[Profile]:
    """Get profile by email (case-insensitive)"""
    stmt = select(Profile).where(func.lower(Profile.email) == email.strip().lower())
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_profile_by_referral_code(session: AsyncSession, code: str) -> Optional[Profile]:
    """Get profile owning a referral code"""
    stmt = select(Profile).where(Profile.referral_code == code)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def generate_referral_code(session: AsyncSession) -> str:
    """
    Generate unique referral code

    Returns:
        Unique 8-character code (A-Z, 0-9)

    Raises:
        RuntimeError: No free code found after REFERRAL_CODE_MAX_ATTEMPTS tries
    """
    for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
        code = ''.join(random.choices(REFERRAL_CODE_ALPHABET, k=REFERRAL_CODE_LENGTH))

        stmt = select(Profile.id).where(Profile.referral_code == code)
        result = await session.execute(stmt)
        if result.scalar_one_or_none() is None:
            return code

    raise RuntimeError("Failed to generate unique referral code")


async def ensure_referral_code(session: AsyncSession, profile: Profile) -> str:
    """
    Return the profile's referral code, creating one when missing

    Args:
        session: Database session
        profile: Profile

    Returns:
        Referral code
    """
    if profile.referral_code:
        return profile.referral_code

    profile.referral_code = await generate_referral_code(session)
    await session.commit()
    await session.refresh(profile)

    logger.info(f"Generated referral code {profile.referral_code} for {profile.id}")
    return profile.referral_code


async def create_profile(
    session: AsyncSession,
    user_id: str,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
) -> Profile:
    """
    Create profile for a Supabase auth user

    New profiles start with 0 credits and no plan.

    Args:
        session: Database session
        user_id: Supabase auth user id
        email: User email
        full_name: Display name

    Returns:
        Created Profile
    """
    profile = Profile(
        id=user_id,
        email=email,
        full_name=full_name,
        credits=0,
        subscription_plan=None,
        monthly_credits_allocated=0,
        referral_code=await generate_referral_code(session),
    )
    session.add(profile)
    await session.commit()
    await session.refresh(profile)

    logger.info(f"Created profile {user_id} ({email})")
    return profile


async def get_or_create_profile(
    session: AsyncSession,
    user_id: str,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
) -> Tuple[Profile, bool]:
    """
    Get existing profile or create it

    Returns:
        (profile, created)
    """
    profile = await get_profile(session, user_id)
    if profile:
        return profile, False

    try:
        return await create_profile(session, user_id, email, full_name), True
    except IntegrityError:
        # Concurrent signup request created it first
        await session.rollback()
        profile = await get_profile(session, user_id)
        if profile is None:
            raise
        return profile, False


def serialize_profile(profile: Profile) -> dict:
    """Profile fields exposed to the owner"""
    return {
        "id": profile.id,
        "email": profile.email,
        "full_name": profile.full_name,
        "credits": profile.credits,
        "subscription_plan": profile.subscription_plan,
        "subscription_start_date": _iso(profile.subscription_start_date),
        "subscription_renewal_date": _iso(profile.subscription_renewal_date),
        "monthly_credits_allocated": profile.monthly_credits_allocated,
        "referral_code": profile.referral_code,
        "is_admin": profile.is_admin,
        "admin_role": profile.admin_role,
        "created_at": _iso(profile.created_at),
    }


def serialize_profile_admin(profile: Profile) -> dict:
    """Profile fields visible to admins"""
    data = serialize_profile(profile)
    data.update({
        "is_banned": profile.is_banned,
        "banned_reason": profile.banned_reason,
        "banned_at": _iso(profile.banned_at),
        "is_locked": profile.is_locked,
        "locked_reason": profile.locked_reason,
        "locked_at": _iso(profile.locked_at),
        "referred_by": profile.referred_by,
        "stripe_customer_id": profile.stripe_customer_id,
        "stripe_subscription_id": profile.stripe_subscription_id,
    })
    return data


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ===========================
# MODEL (PERSONA) OPERATIONS
# ===========================


async def create_model(
    session: AsyncSession,
    user_id: str,
    name: str,
    age: Optional[int] = None,
    nationality: Optional[str] = None,
    occupation: Optional[str] = None,
    attributes: Optional[dict] = None,
    generation_method: str = "describe",
    reference_images: Optional[List[str]] = None,
) -> PersonaModel:
    """
    Create model persona (wizard step 1)

    Raises:
        ValueError: Empty name or age under 18
    """
    if not name or not name.strip():
        raise ValueError("Model name is required")
    if age is not None and age < 18:
        raise ValueError("Model age must be 18 or older")

    model = PersonaModel(
        user_id=user_id,
        name=name.strip(),
        age=age,
        nationality=nationality,
        occupation=occupation,
        attributes=attributes or {},
        facial_features={},
        generation_method=generation_method,
        reference_images=reference_images or [],
        generation_count=0,
    )
    session.add(model)
    await session.commit()
    await session.refresh(model)

    logger.info(f"Created model {model.id} ({model.name}) for user {user_id}")
    return model


async def get_model(session: AsyncSession, model_id: str) -> Optional[PersonaModel]:
    """Get model by id"""
    return await session.get(PersonaModel, model_id)


async def get_model_images(
    session: AsyncSession, model_id: str, limit: int = MODEL_IMAGES_LIMIT
) -> List[GeneratedImage]:
    """Latest kept images of a model (newest first)"""
    stmt = (
        select(GeneratedImage)
        .where(GeneratedImage.model_id == model_id)
        .order_by(GeneratedImage.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_user_models(session: AsyncSession, user_id: str) -> List[PersonaModel]:
    """User's models, newest first"""
    stmt = (
        select(PersonaModel)
        .where(PersonaModel.user_id == user_id)
        .order_by(PersonaModel.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_user_models(session: AsyncSession, user_id: str) -> int:
    stmt = select(func.count(PersonaModel.id)).where(PersonaModel.user_id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one()


async def get_selected_model(session: AsyncSession, user_id: str) -> Optional[PersonaModel]:
    """Most recently updated model that has a selected image"""
    stmt = (
        select(PersonaModel)
        .where(
            PersonaModel.user_id == user_id,
            PersonaModel.selected_image_url.is_not(None),
        )
        .order_by(PersonaModel.updated_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def update_model(session: AsyncSession, model: PersonaModel, **fields) -> PersonaModel:
    """
    Update model columns and commit

    Args:
        session: Database session
        model: Model to update
        fields: Column values (attributes, facial_features, prompt, ...)
    """
    for key, value in fields.items():
        setattr(model, key, value)
    await session.commit()
    await session.refresh(model)
    return model


async def increment_generation_count(session: AsyncSession, model_id: str, count: int) -> int:
    """
    Atomically add to the model's generation counter

    Returns:
        New generation_count
    """
    stmt = (
        update(PersonaModel)
        .where(PersonaModel.id == model_id)
        .values(generation_count=PersonaModel.generation_count + count)
    )
    await session.execute(stmt)
    await session.commit()

    result = await session.execute(
        select(PersonaModel.generation_count).where(PersonaModel.id == model_id)
    )
    return result.scalar_one()


async def delete_model(session: AsyncSession, model: PersonaModel) -> None:
    """Delete model and its images"""
    # Break the model -> image reference before the images go away
    model.locked_reference_image_id = None
    await session.flush()
    await session.execute(delete(GeneratedImage).where(GeneratedImage.model_id == model.id))
    await session.delete(model)
    await session.commit()
    logger.info(f"Deleted model {model.id}")


# ===========================
# GENERATED IMAGE OPERATIONS
# ===========================


async def find_image_by_url(
    session: AsyncSession, model_id: str, image_url: str
) -> Optional[GeneratedImage]:
    stmt = (
        select(GeneratedImage)
        .where(GeneratedImage.model_id == model_id, GeneratedImage.image_url == image_url)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _apply_selection(
    session: AsyncSession, model: PersonaModel, image: GeneratedImage
) -> None:
    """
    Make `image` the only selected image of `model` (no commit)

    Unselect first and flush so the partial unique index never sees two
    selected rows.
    """
    await session.execute(
        update(GeneratedImage)
        .where(GeneratedImage.model_id == model.id, GeneratedImage.id != image.id)
        .values(is_selected=False)
    )
    await session.flush()

    image.is_selected = True
    model.locked_reference_image_id = image.id
    model.selected_image_url = image.image_url
    model.updated_at = datetime.now(UTC)


async def save_generated_image(
    session: AsyncSession,
    model: PersonaModel,
    image_url: str,
    prompt: Optional[str] = None,
    lock_reference: bool = False,
) -> Tuple[GeneratedImage, bool]:
    """
    Persist the single candidate the user kept

    The same image URL is never stored twice for a model; a repeated keep
    returns the existing row. With lock_reference the image becomes the
    model's only selected image and its locked reference.

    Args:
        session: Database session
        model: Owning model
        image_url: Stored image URL
        prompt: Prompt that produced the image
        lock_reference: Select + lock as reference image

    Returns:
        (image, duplicate)
    """
    image = await find_image_by_url(session, model.id, image_url)
    duplicate = image is not None

    if image is None:
        image = GeneratedImage(
            model_id=model.id,
            image_url=image_url,
            prompt=prompt,
            is_selected=False,
        )
        session.add(image)
        await session.flush()

    if lock_reference:
        await _apply_selection(session, model, image)

    await session.commit()
    await session.refresh(image)

    if duplicate:
        logger.info(f"Image already kept for model {model.id}, skipping duplicate save")
    return image, duplicate


async def select_model_image(
    session: AsyncSession, model: PersonaModel, image_id: str
) -> Optional[GeneratedImage]:
    """
    Mark an existing image as the model's selected / locked reference image

    Returns:
        Selected image or None if it does not belong to the model
    """
    image = await session.get(GeneratedImage, image_id)
    if image is None or image.model_id != model.id:
        return None

    await _apply_selection(session, model, image)
    await session.commit()
    await session.refresh(image)
    return image


async def delete_image(session: AsyncSession, model: PersonaModel, image_id: str) -> bool:
    """
    Delete a kept image

    Returns:
        True if deleted, False if not found for this model
    """
    image = await session.get(GeneratedImage, image_id)
    if image is None or image.model_id != model.id:
        return False

    if model.locked_reference_image_id == image.id:
        model.locked_reference_image_id = None
        model.selected_image_url = None
        await session.flush()

    await session.delete(image)
    await session.commit()
    return True


def serialize_image(image: GeneratedImage) -> dict:
    return {
        "id": image.id,
        "model_id": image.model_id,
        "image_url": image.image_url,
        "prompt": image.prompt,
        "is_selected": image.is_selected,
        "created_at": _iso(image.created_at),
    }


def serialize_model(model: PersonaModel, images: Optional[List[GeneratedImage]] = None) -> dict:
    data = {
        "id": model.id,
        "user_id": model.user_id,
        "name": model.name,
        "age": model.age,
        "nationality": model.nationality,
        "occupation": model.occupation,
        "attributes": model.attributes or {},
        "facial_features": model.facial_features or {},
        "analyzed_features": model.analyzed_features,
        "generation_method": model.generation_method,
        "reference_images": model.reference_images or [],
        "prompt": model.prompt,
        "locked_reference_image_id": model.locked_reference_image_id,
        "selected_image_url": model.selected_image_url,
        "generation_count": model.generation_count,
        "created_at": _iso(model.created_at),
        "updated_at": _iso(model.updated_at),
    }
    if images is not None:
        data["generated_images"] = [serialize_image(img) for img in images]
    return data


# ===========================
# REFERRAL OPERATIONS
# ===========================


async def get_referral_by_referred(session: AsyncSession, referred_id: str) -> Optional[Referral]:
    stmt = select(Referral).where(Referral.referred_id == referred_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_referral_stats(session: AsyncSession, user_id: str) -> dict:
    """
    Referral statistics for a referrer

    Returns:
        {"total_referrals", "total_credits_earned", "referrals": [...]}
    """
    stmt = (
        select(Referral, Profile.email)
        .join(Profile, Profile.id == Referral.referred_id)
        .where(Referral.referrer_id == user_id)
        .order_by(Referral.created_at.desc())
    )
    result = await session.execute(stmt)
    rows = result.all()

    referrals = [
        {
            "id": referral.id,
            "referred_email": email,
            "credits_awarded": referral.credits_awarded_referrer,
            "created_at": _iso(referral.created_at),
        }
        for referral, email in rows
    ]

    return {
        "total_referrals": len(referrals),
        "total_credits_earned": sum(r["credits_awarded"] for r in referrals),
        "referrals": referrals,
    }


# ===========================
# ADMIN OPERATIONS
# ===========================


def log_admin_action(
    session: AsyncSession,
    admin_id: str,
    action_type: str,
    target_user_id: Optional[str] = None,
    details: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AdminAction:
    """
    Add an audit row to the current transaction (caller commits)

    Args:
        session: Database session
        admin_id: Acting admin profile id
        action_type: AdminActionType value
        target_user_id: Affected profile id
        details: JSON details
        ip_address: Client IP
        user_agent: Client user agent
    """
    action = AdminAction(
        admin_id=admin_id,
        action_type=action_type,
        target_user_id=target_user_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(action)
    return action


async def get_admin_actions(
    session: AsyncSession, target_user_id: Optional[str] = None, limit: int = 100
) -> List[AdminAction]:
    stmt = select(AdminAction).order_by(AdminAction.created_at.desc(), AdminAction.id.desc()).limit(limit)
    if target_user_id:
        stmt = stmt.where(AdminAction.target_user_id == target_user_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_profiles(
    session: AsyncSession,
    page: int = 1,
    limit: int = 50,
    search: Optional[str] = None,
    status: str = "all",
) -> Tuple[List[Profile], int]:
    """
    Paginated profile list for the admin console

    Args:
        session: Database session
        page: 1-based page
        limit: Page size
        search: Email substring or exact id
        status: all | banned | locked | active | subscribed

    Returns:
        (profiles, total)
    """
    conditions = []

    if search:
        term = search.strip()
        conditions.append(or_(Profile.email.ilike(f"%{term}%"), Profile.id == term))

    if status == "banned":
        conditions.append(Profile.is_banned.is_(True))
    elif status == "locked":
        conditions.append(Profile.is_locked.is_(True))
    elif status == "active":
        conditions.append(Profile.is_banned.is_(False))
        conditions.append(Profile.is_locked.is_(False))
    elif status == "subscribed":
        conditions.append(Profile.subscription_plan.is_not(None))

    count_stmt = select(func.count(Profile.id)).where(*conditions)
    total = (await session.execute(count_stmt)).scalar_one()

    stmt = (
        select(Profile)
        .where(*conditions)
        .order_by(Profile.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all()), total


async def get_admin_stats(session: AsyncSession) -> dict:
    """Aggregate counters for the admin dashboard"""
    stmt = select(
        func.count(Profile.id),
        func.count(Profile.id).filter(Profile.is_banned.is_(True)),
        func.count(Profile.id).filter(Profile.is_locked.is_(True)),
        func.count(Profile.id).filter(Profile.subscription_plan.is_not(None)),
        func.coalesce(func.sum(Profile.credits), 0),
    )
    total, banned, locked, subscribed, credits = (await session.execute(stmt)).one()

    return {
        "totalUsers": total,
        "bannedUsers": banned,
        "lockedUsers": locked,
        "subscribedUsers": subscribed,
        "totalCredits": int(credits),
    }


async def list_admins(session: AsyncSession) -> List[Profile]:
    stmt = select(Profile).where(Profile.is_admin.is_(True)).order_by(Profile.created_at)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_admins(session: AsyncSession) -> int:
    stmt = select(func.count(Profile.id)).where(Profile.is_admin.is_(True))
    return (await session.execute(stmt)).scalar_one()


async def get_first_super_admin(session: AsyncSession) -> Optional[Profile]:
    """The earliest super admin (cannot be removed)"""
    stmt = (
        select(Profile)
        .where(Profile.is_admin.is_(True), Profile.admin_role == AdminRole.SUPER_ADMIN.value)
        .order_by(Profile.created_at)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# ===========================
# SUBSCRIPTION / STRIPE OPERATIONS
# ===========================


def add_subscription_history(
    session: AsyncSession,
    user_id: str,
    plan_type: str,
    action: str,
    credits_allocated: int = 0,
    stripe_subscription_id: Optional[str] = None,
) -> SubscriptionHistory:
    """Add a history row to the current transaction (caller commits)"""
    entry = SubscriptionHistory(
        user_id=user_id,
        plan_type=plan_type,
        action=action,
        credits_allocated=credits_allocated,
        stripe_subscription_id=stripe_subscription_id,
    )
    session.add(entry)
    return entry


async def get_subscription_history(
    session: AsyncSession, user_id: str, limit: int = 20
) -> List[SubscriptionHistory]:
    stmt = (
        select(SubscriptionHistory)
        .where(SubscriptionHistory.user_id == user_id)
        .order_by(SubscriptionHistory.created_at.desc(), SubscriptionHistory.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


def serialize_subscription_history(entry: SubscriptionHistory) -> dict:
    return {
        "id": entry.id,
        "plan_type": entry.plan_type,
        "action": entry.action,
        "credits_allocated": entry.credits_allocated,
        "stripe_subscription_id": entry.stripe_subscription_id,
        "created_at": _iso(entry.created_at),
    }


async def get_price_mapping(session: AsyncSession, price_id: str) -> Optional[StripePriceMapping]:
    stmt = select(StripePriceMapping).where(StripePriceMapping.stripe_price_id == price_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_price_mapping_for_plan(
    session: AsyncSession, plan_type: str
) -> Optional[StripePriceMapping]:
    stmt = select(StripePriceMapping).where(
        StripePriceMapping.plan_type == plan_type,
        StripePriceMapping.is_active.is_(True),
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_price_mappings(session: AsyncSession) -> List[StripePriceMapping]:
    result = await session.execute(select(StripePriceMapping).order_by(StripePriceMapping.plan_type))
    return list(result.scalars().all())


async def upsert_price_mapping(
    session: AsyncSession,
    plan_type: str,
    stripe_price_id: str,
    stripe_product_id: str,
    amount,
    currency: str,
    credits: int,
) -> StripePriceMapping:
    """Insert or update the mapping for a plan"""
    stmt = select(StripePriceMapping).where(StripePriceMapping.plan_type == plan_type)
    mapping = (await session.execute(stmt)).scalar_one_or_none()

    if mapping is None:
        mapping = StripePriceMapping(plan_type=plan_type)
        session.add(mapping)

    mapping.stripe_price_id = stripe_price_id
    mapping.stripe_product_id = stripe_product_id
    mapping.amount = amount
    mapping.currency = currency
    mapping.credits = credits
    mapping.is_active = True

    await session.commit()
    await session.refresh(mapping)
    return mapping


async def is_stripe_event_processed(session: AsyncSession, event_key: str) -> bool:
    return await session.get(StripeEvent, event_key) is not None


def add_stripe_event(session: AsyncSession, event_key: str, event_type: str) -> StripeEvent:
    """
    Record a processed event in the current transaction (caller commits)

    The primary key makes a concurrent duplicate fail at commit time.
    """
    event = StripeEvent(id=event_key, event_type=event_type)
    session.add(event)
    return event


# ===========================
# GENERATION JOB OPERATIONS
# ===========================


async def create_job(
    session: AsyncSession,
    user_id: str,
    kind: str,
    model_id: Optional[str] = None,
    num_images: int = 1,
    user_prompt: Optional[str] = None,
) -> GenerationJob:
    job = GenerationJob(
        user_id=user_id,
        model_id=model_id,
        kind=kind,
        status=JobStatus.QUEUED.value,
        progress=0,
        num_images=num_images,
        user_prompt=user_prompt,
        result_urls=[],
    )
    session.add(job)
    await session.commit()
    await session.refresh(job)
    return job


async def get_job(session: AsyncSession, job_id: str) -> Optional[GenerationJob]:
    return await session.get(GenerationJob, job_id)


async def list_user_jobs(session: AsyncSession, user_id: str, limit: int = 20) -> List[GenerationJob]:
    stmt = (
        select(GenerationJob)
        .where(GenerationJob.user_id == user_id)
        .order_by(GenerationJob.created_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_job(session: AsyncSession, job: GenerationJob, **fields) -> GenerationJob:
    """Update job columns and commit (visible to pollers immediately)"""
    for key, value in fields.items():
        setattr(job, key, value)
    if fields.get("status") in (JobStatus.COMPLETED.value, JobStatus.FAILED.value):
        job.completed_at = datetime.now(UTC)
    await session.commit()
    return job


def serialize_job(job: GenerationJob) -> dict:
    return {
        "id": job.id,
        "kind": job.kind,
        "status": job.status,
        "progress": job.progress,
        "modelId": job.model_id,
        "numImages": job.num_images,
        "cost": job.cost,
        "isFree": job.is_free,
        "images": job.result_urls or [],
        "prompt": job.user_prompt,
        "fullPrompt": job.full_prompt,
        "error": job.error,
        "createdAt": _iso(job.created_at),
        "completedAt": _iso(job.completed_at),
    }

"""
Unit tests for CRUD operations
"""

import pytest
from sqlalchemy import select

from src.database.crud import (
    create_profile,
    get_profile,
    get_or_create_profile,
    ensure_referral_code,
    create_model,
    get_model_images,
    get_selected_model,
    increment_generation_count,
    save_generated_image,
    select_model_image,
    delete_image,
    delete_model,
    serialize_model,
    create_job,
    update_job,
    serialize_job,
)
from src.database.models import GeneratedImage, JobKind, JobStatus


@pytest.mark.asyncio
async def test_create_profile(db_session):
    """Test profile creation"""
    profile = await create_profile(
        session=db_session,
        user_id="user-1",
        email="user1@example.com",
        full_name="Test User",
    )

    assert profile.id == "user-1"
    assert profile.email == "user1@example.com"
    assert profile.credits == 0
    assert profile.subscription_plan is None
    assert not profile.is_admin
    assert len(profile.referral_code) == 8


@pytest.mark.asyncio
async def test_get_or_create_profile(db_session):
    """Test get_or_create_profile function"""
    profile1, created1 = await get_or_create_profile(db_session, "user-1", "user1@example.com")
    assert created1 is True

    profile2, created2 = await get_or_create_profile(db_session, "user-1", "user1@example.com")
    assert created2 is False
    assert profile2.id == profile1.id

    # Non-existent user
    assert await get_profile(db_session, "missing") is None


@pytest.mark.asyncio
async def test_ensure_referral_code_keeps_existing(db_session, make_profile):
    user = await make_profile(referral_code="KEEPME12")
    profile = await get_profile(db_session, user.id)

    assert await ensure_referral_code(db_session, profile) == "KEEPME12"

    without_code = await make_profile()
    profile = await get_profile(db_session, without_code.id)
    code = await ensure_referral_code(db_session, profile)
    assert len(code) == 8
    assert code.isupper() or code.isdigit()


# ============================================================================
# MODELS
# ============================================================================


@pytest.mark.asyncio
async def test_create_model(db_session, make_profile):
    user = await make_profile()

    model = await create_model(
        db_session,
        user_id=user.id,
        name="  Sophia ",
        age=24,
        nationality="French",
        attributes={"gender": "female", "hairColor": "Blonde"},
    )

    assert model.name == "Sophia"
    assert model.age == 24
    assert model.attributes["hairColor"] == "Blonde"
    assert model.facial_features == {}
    assert model.generation_method == "describe"
    assert model.generation_count == 0


@pytest.mark.asyncio
async def test_create_model_rejects_minors(db_session, make_profile):
    """Model age, if present, must be 18 or older"""
    user = await make_profile()

    with pytest.raises(ValueError, match="18"):
        await create_model(db_session, user_id=user.id, name="Teen", age=17)

    with pytest.raises(ValueError, match="name"):
        await create_model(db_session, user_id=user.id, name="   ")

    # No age is fine
    model = await create_model(db_session, user_id=user.id, name="Ageless")
    assert model.age is None


@pytest.mark.asyncio
async def test_increment_generation_count(db_session, make_profile):
    user = await make_profile()
    model = await create_model(db_session, user_id=user.id, name="Mia")

    assert await increment_generation_count(db_session, model.id, 3) == 3
    assert await increment_generation_count(db_session, model.id, 1) == 4


# ============================================================================
# KEPT IMAGES / REFERENCE LOCK
# ============================================================================


@pytest.mark.asyncio
async def test_save_generated_image_deduplicates(db_session, make_profile):
    """The same URL is stored once per model"""
    user = await make_profile()
    model = await create_model(db_session, user_id=user.id, name="Ava")

    image1, duplicate1 = await save_generated_image(db_session, model, "https://cdn/a.png", prompt="p")
    image2, duplicate2 = await save_generated_image(db_session, model, "https://cdn/a.png", prompt="p")

    assert duplicate1 is False
    assert duplicate2 is True
    assert image2.id == image1.id
    assert len(await get_model_images(db_session, model.id)) == 1


@pytest.mark.asyncio
async def test_single_selected_image_per_model(db_session, make_profile):
    """At most one image is selected, and it is the locked reference"""
    user = await make_profile()
    model = await create_model(db_session, user_id=user.id, name="Luna")

    first, _ = await save_generated_image(db_session, model, "https://cdn/1.png", lock_reference=True)
    second, _ = await save_generated_image(db_session, model, "https://cdn/2.png")

    assert model.locked_reference_image_id == first.id
    assert model.selected_image_url == "https://cdn/1.png"

    selected = await select_model_image(db_session, model, second.id)
    assert selected.id == second.id

    result = await db_session.execute(
        select(GeneratedImage).where(
            GeneratedImage.model_id == model.id,
            GeneratedImage.is_selected.is_(True),
        ).execution_options(populate_existing=True)
    )
    selected_rows = list(result.scalars().all())

    assert [img.id for img in selected_rows] == [second.id]
    assert model.locked_reference_image_id == second.id
    assert model.selected_image_url == "https://cdn/2.png"


@pytest.mark.asyncio
async def test_select_image_of_other_model(db_session, make_profile):
    user = await make_profile()
    model_a = await create_model(db_session, user_id=user.id, name="A")
    model_b = await create_model(db_session, user_id=user.id, name="B")

    image, _ = await save_generated_image(db_session, model_a, "https://cdn/a.png")

    assert await select_model_image(db_session, model_b, image.id) is None


@pytest.mark.asyncio
async def test_delete_locked_image_clears_reference(db_session, make_profile):
    user = await make_profile()
    model = await create_model(db_session, user_id=user.id, name="Zoe")
    image, _ = await save_generated_image(db_session, model, "https://cdn/z.png", lock_reference=True)

    assert await delete_image(db_session, model, image.id) is True
    assert model.locked_reference_image_id is None
    assert model.selected_image_url is None
    assert await delete_image(db_session, model, image.id) is False


@pytest.mark.asyncio
async def test_get_selected_model_and_delete(db_session, make_profile):
    user = await make_profile()
    assert await get_selected_model(db_session, user.id) is None

    model = await create_model(db_session, user_id=user.id, name="Nora")
    await save_generated_image(db_session, model, "https://cdn/n.png", lock_reference=True)

    selected = await get_selected_model(db_session, user.id)
    assert selected.id == model.id

    data = serialize_model(model, await get_model_images(db_session, model.id))
    assert data["generated_images"][0]["is_selected"] is True

    await delete_model(db_session, model)
    assert await get_selected_model(db_session, user.id) is None
    assert await get_model_images(db_session, model.id) == []


# ============================================================================
# JOBS
# ============================================================================


@pytest.mark.asyncio
async def test_job_lifecycle(db_session, make_profile):
    user = await make_profile()

    job = await create_job(db_session, user_id=user.id, kind=JobKind.CHAT.value, num_images=1)
    assert job.status == JobStatus.QUEUED.value
    assert job.progress == 0
    assert job.completed_at is None

    await update_job(db_session, job, status=JobStatus.RUNNING.value, progress=50)
    assert job.completed_at is None

    await update_job(
        db_session, job, status=JobStatus.COMPLETED.value, progress=100, result_urls=["https://cdn/x.png"]
    )
    data = serialize_job(job)

    assert data["status"] == "completed"
    assert data["images"] == ["https://cdn/x.png"]
    assert data["completedAt"] is not None

"""
HTTP tests for auth, profile, models, generation and referrals
"""

import uuid

import pytest

from src.database.models import Profile
from src.services.generation_service import generation_service

from conftest import auth_headers, make_token


class FakeGenerator:
    async def generate_images(self, prompt, negative_prompt, num_images, reference_image_url=None, on_image=None):
        return [f"https://cdn.example.com/{i}.png" for i in range(num_images)]


async def create_model(client, headers, **body):
    payload = {"name": "Aria", "age": 24, "nationality": "Italian", "gender": "female"}
    payload.update(body)
    response = await client.post("/api/models", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()["model"]


# ============================================================================
# AUTH
# ============================================================================


@pytest.mark.asyncio
async def test_health(app_client):
    response = await app_client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["x-content-type-options"] == "nosniff"


@pytest.mark.asyncio
async def test_readiness_checks_database(app_client):
    response = await app_client.get("/health", headers={"x-request-id": "req-123"})

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "up"}
    assert response.headers["x-request-id"] == "req-123"


@pytest.mark.asyncio
async def test_missing_auth_rejected(app_client):
    response = await app_client.get("/api/profile")

    assert response.status_code == 401
    assert response.json() == {"detail": "Authentication required"}


@pytest.mark.asyncio
async def test_invalid_and_expired_tokens_rejected(app_client):
    bad = await app_client.get("/api/profile", headers={"Authorization": "Bearer not-a-jwt"})
    expired = await app_client.get(
        "/api/profile",
        headers={"Authorization": f"Bearer {make_token(str(uuid.uuid4()), expires_in=-60)}"},
    )

    assert bad.status_code == 401
    assert expired.status_code == 401


@pytest.mark.asyncio
async def test_first_request_creates_profile(app_client, session_maker):
    user_id = str(uuid.uuid4())

    response = await app_client.post(
        "/api/auth/ensure-profile", headers=auth_headers(user_id, "new@example.com")
    )

    assert response.status_code == 200
    data = response.json()
    assert data["created"] is True
    assert data["profile"]["credits"] == 0
    assert data["profile"]["subscription_plan"] is None
    assert data["profile"]["referral_code"]

    again = await app_client.post("/api/auth/ensure-profile", headers=auth_headers(user_id))
    assert again.json()["created"] is False

    async with session_maker() as session:
        assert (await session.get(Profile, user_id)).email == "new@example.com"


@pytest.mark.asyncio
async def test_dev_header_in_development(app_client, make_profile):
    user = await make_profile(credits=7)

    response = await app_client.get("/api/profile", headers={"x-user-id": user.id})

    assert response.status_code == 200
    assert response.json()["profile"]["credits"] == 7


@pytest.mark.asyncio
async def test_banned_user_forbidden(app_client, make_profile):
    user = await make_profile(is_banned=True, banned_reason="spam")

    response = await app_client.get("/api/profile", headers=auth_headers(user.id))

    assert response.status_code == 403


# ============================================================================
# MODELS
# ============================================================================


@pytest.mark.asyncio
async def test_model_crud(app_client, make_profile):
    user = await make_profile()
    headers = auth_headers(user.id)

    model = await create_model(app_client, headers)
    assert model["name"] == "Aria"
    assert model["attributes"]["gender"] == "female"
    assert model["generation_count"] == 0

    listing = await app_client.get("/api/models", headers=headers)
    assert [m["id"] for m in listing.json()["models"]] == [model["id"]]

    updated = await app_client.put(
        f"/api/models/{model['id']}/facial-features",
        json={"facialFeatures": {"faceShape": "oval"}},
        headers=headers,
    )
    assert updated.json()["model"]["facialFeatures"] == {"faceShape": "oval"}

    deleted = await app_client.delete(f"/api/models/{model['id']}", headers=headers)
    assert deleted.status_code == 200
    missing = await app_client.get(f"/api/models/{model['id']}", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_underage_model_rejected(app_client, make_profile):
    user = await make_profile()

    response = await app_client.post(
        "/api/models", json={"name": "Teen", "age": 17}, headers=auth_headers(user.id)
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Model age must be 18 or older"}


@pytest.mark.asyncio
async def test_other_users_model_hidden(app_client, make_profile):
    owner = await make_profile()
    stranger = await make_profile()
    model = await create_model(app_client, auth_headers(owner.id))

    response = await app_client.get(f"/api/models/{model['id']}", headers=auth_headers(stranger.id))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_keep_image_deduplicates_and_locks(app_client, make_profile):
    user = await make_profile()
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)
    url = f"/api/models/{model['id']}/images"

    first = await app_client.post(
        url, json={"imageUrl": "https://cdn.example.com/a.png", "lockReference": True}, headers=headers
    )
    second = await app_client.post(url, json={"imageUrl": "https://cdn.example.com/a.png"}, headers=headers)

    assert first.json()["duplicate"] is False
    assert first.json()["image"]["is_selected"] is True
    assert second.json()["duplicate"] is True
    assert second.json()["image"]["id"] == first.json()["image"]["id"]

    selected = await app_client.get("/api/models/selected", headers=headers)
    body = selected.json()["model"]
    assert body["selected_image_url"] == "https://cdn.example.com/a.png"
    assert body["locked_reference_image_id"] == first.json()["image"]["id"]
    assert len(body["generated_images"]) == 1


@pytest.mark.asyncio
async def test_select_image_switches_reference(app_client, make_profile):
    user = await make_profile()
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)
    url = f"/api/models/{model['id']}/images"

    await app_client.post(url, json={"imageUrl": "https://cdn.example.com/a.png", "lockReference": True}, headers=headers)
    second = await app_client.post(url, json={"imageUrl": "https://cdn.example.com/b.png"}, headers=headers)
    image_id = second.json()["image"]["id"]

    response = await app_client.post(f"{url}/{image_id}/select", headers=headers)

    assert response.status_code == 200
    assert response.json()["model"]["selected_image_url"] == "https://cdn.example.com/b.png"

    detail = await app_client.get(f"/api/models/{model['id']}", headers=headers)
    selected = [img for img in detail.json()["model"]["generated_images"] if img["is_selected"]]
    assert [img["id"] for img in selected] == [image_id]


# ============================================================================
# GENERATION
# ============================================================================


@pytest.mark.asyncio
async def test_generate_chat_requires_prompt(app_client, make_profile):
    user = await make_profile(credits=100, subscription_plan="essential")
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat", json={"userPrompt": "   "}, headers=headers
    )

    assert response.status_code == 400
    assert response.json() == {"error": "User prompt is required"}


@pytest.mark.asyncio
async def test_locked_account_cannot_generate(app_client, make_profile):
    user = await make_profile(credits=100, subscription_plan="essential", is_locked=True)
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat", json={"userPrompt": "at the beach"}, headers=headers
    )

    assert response.status_code == 403
    assert response.json()["code"] == "ACCOUNT_LOCKED"


@pytest.mark.asyncio
async def test_generate_chat_success(app_client, session_maker, make_profile, monkeypatch):
    monkeypatch.setattr(generation_service, "generator", FakeGenerator())
    user = await make_profile(credits=100, subscription_plan="essential")
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat",
        json={"userPrompt": "at the beach", "numImages": 1},
        headers=headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["images"] == ["https://cdn.example.com/0.png"]
    assert data["model"]["generationCount"] == 1
    assert "at the beach" in data["fullPrompt"]

    job = await app_client.get(f"/api/jobs/{data['jobId']}", headers=headers)
    assert job.json()["job"]["status"] == "completed"

    async with session_maker() as session:
        assert (await session.get(Profile, user.id)).credits == 90


@pytest.mark.asyncio
async def test_generation_without_providers_refunds(app_client, session_maker, make_profile):
    user = await make_profile(credits=100, subscription_plan="essential")
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat",
        json={"userPrompt": "in a park", "numImages": 1},
        headers=headers,
    )

    assert response.status_code == 500
    assert response.json()["code"] == "GENERATION_FAILED"

    async with session_maker() as session:
        assert (await session.get(Profile, user.id)).credits == 100


@pytest.mark.asyncio
async def test_insufficient_credits_status(app_client, make_profile):
    user = await make_profile(credits=5, subscription_plan="essential")
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat",
        json={"userPrompt": "in a park", "numImages": 1},
        headers=headers,
    )

    assert response.status_code == 402
    assert response.json()["code"] == "INSUFFICIENT_CREDITS"


@pytest.mark.asyncio
@pytest.mark.parametrize("num_images", [2, 4])
async def test_image_count_must_be_single_or_batch(app_client, session_maker, make_profile, monkeypatch, num_images):
    monkeypatch.setattr(generation_service, "generator", FakeGenerator())
    user = await make_profile(credits=10, subscription_plan="essential")
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat",
        json={"userPrompt": "at the beach", "numImages": num_images},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json() == {"error": "numImages must be 1 or 3"}

    response = await app_client.post(
        f"/api/models/{model['id']}/generate", json={"numImages": num_images}, headers=headers
    )
    assert response.status_code == 400

    jobs = await app_client.get("/api/jobs", headers=headers)
    assert jobs.json()["jobs"] == []

    async with session_maker() as session:
        assert (await session.get(Profile, user.id)).credits == 10


@pytest.mark.asyncio
async def test_free_batch_uses_whole_allowance(app_client, make_profile, monkeypatch):
    async def keep_url(url):
        return url

    monkeypatch.setattr(generation_service, "generator", FakeGenerator())
    monkeypatch.setattr(generation_service, "_watermark", keep_url)
    user = await make_profile(credits=0, subscription_plan=None)
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat",
        json={"userPrompt": "at the beach", "numImages": 3},
        headers=headers,
    )
    assert response.status_code == 200
    assert len(response.json()["images"]) == 3

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat",
        json={"userPrompt": "in a park", "numImages": 1},
        headers=headers,
    )
    assert response.status_code == 402
    assert response.json()["code"] == "FREE_LIMIT_REACHED"


@pytest.mark.asyncio
async def test_nsfw_chat_without_plan(app_client, make_profile):
    user = await make_profile(credits=100)
    headers = auth_headers(user.id)
    model = await create_model(app_client, headers)

    response = await app_client.post(
        f"/api/models/{model['id']}/generate-chat",
        json={"userPrompt": "in a park", "isNsfw": True},
        headers=headers,
    )

    assert response.status_code == 403
    assert response.json()["code"] == "NSFW_NOT_ALLOWED"


# ============================================================================
# REFERRALS
# ============================================================================


@pytest.mark.asyncio
async def test_process_referral_endpoint(app_client, make_profile):
    await make_profile(referral_code="HTTPREF1")
    user = await make_profile()
    headers = auth_headers(user.id)

    response = await app_client.post(
        "/api/referrals/process", json={"referralCode": "HTTPREF1"}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["success"] is True

    invalid = await app_client.post(
        "/api/referrals/process", json={"referralCode": "UNKNOWN1"}, headers=headers
    )
    assert invalid.status_code == 404
    assert invalid.json()["code"] == "INVALID_REFERRAL_CODE"

"""
HTTP tests for the admin console
"""

import pytest
from sqlalchemy import select

from src.database import crud
from src.database.models import AdminActionType, CreditTransaction, Profile, TransactionType
from src.services.storage_service import supabase_service

from conftest import auth_headers


@pytest.fixture
async def admin(make_profile):
    return await make_profile(email="admin@example.com", is_admin=True, admin_role="admin")


@pytest.fixture
async def super_admin(make_profile):
    return await make_profile(email="root@example.com", is_admin=True, admin_role="super_admin")


# ============================================================================
# ACCESS
# ============================================================================


@pytest.mark.asyncio
async def test_regular_user_forbidden(app_client, make_profile):
    user = await make_profile()

    response = await app_client.get("/api/admin/users", headers=auth_headers(user.id))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_users_with_search(app_client, admin, make_profile):
    await make_profile(email="jane@example.com")
    await make_profile(email="bob@example.com")

    response = await app_client.get(
        "/api/admin/users", params={"search": "jane"}, headers=auth_headers(admin.id)
    )

    assert response.status_code == 200
    data = response.json()
    assert [u["email"] for u in data["users"]] == ["jane@example.com"]
    assert data["pagination"]["total"] == 1
    assert data["users"][0]["subscription"] is None


# ============================================================================
# MODERATION
# ============================================================================


@pytest.mark.asyncio
async def test_ban_and_unban_are_audited(app_client, session_maker, admin, make_profile):
    user = await make_profile()
    headers = auth_headers(admin.id)

    banned = await app_client.post(
        f"/api/admin/users/{user.id}/ban", json={"reason": "chargeback"}, headers=headers
    )
    assert banned.status_code == 200

    # Banned users are rejected everywhere
    blocked = await app_client.get("/api/profile", headers=auth_headers(user.id))
    assert blocked.status_code == 403

    await app_client.post(f"/api/admin/users/{user.id}/unban", headers=headers)
    allowed = await app_client.get("/api/profile", headers=auth_headers(user.id))
    assert allowed.status_code == 200

    async with session_maker() as session:
        actions = await crud.get_admin_actions(session, target_user_id=user.id)
        assert [a.action_type for a in actions] == [
            AdminActionType.UNBAN.value,
            AdminActionType.BAN.value,
        ]
        assert all(a.admin_id == admin.id for a in actions)


@pytest.mark.asyncio
async def test_lock_keeps_read_access(app_client, admin, make_profile):
    user = await make_profile()

    await app_client.post(f"/api/admin/users/{user.id}/lock", headers=auth_headers(admin.id))

    response = await app_client.get("/api/profile", headers=auth_headers(user.id))
    assert response.status_code == 200

    detail = await app_client.get(f"/api/admin/users/{user.id}", headers=auth_headers(admin.id))
    assert detail.json()["profile"]["is_locked"] is True
    assert detail.json()["profile"]["locked_reason"]


@pytest.mark.asyncio
async def test_update_credits_writes_ledger(app_client, session_maker, admin, make_profile):
    user = await make_profile(credits=10)

    response = await app_client.post(
        f"/api/admin/users/{user.id}/update",
        json={"credits": 60, "subscription_plan": "ultimate"},
        headers=auth_headers(admin.id),
    )

    assert response.status_code == 200
    assert response.json()["user"]["credits"] == 60
    assert response.json()["user"]["subscription_plan"] == "ultimate"

    async with session_maker() as session:
        result = await session.execute(
            select(CreditTransaction.amount).where(
                CreditTransaction.user_id == user.id,
                CreditTransaction.transaction_type == TransactionType.ADMIN_ADJUSTMENT.value,
            )
        )
        assert result.scalars().all() == [50]


@pytest.mark.asyncio
async def test_update_rejects_unknown_plan(app_client, admin, make_profile):
    user = await make_profile()

    response = await app_client.post(
        f"/api/admin/users/{user.id}/update",
        json={"subscription_plan": "platinum"},
        headers=auth_headers(admin.id),
    )

    assert response.status_code == 400


# ============================================================================
# DELETION
# ============================================================================


@pytest.mark.asyncio
async def test_only_super_admin_deletes(app_client, session_maker, admin, super_admin, make_profile):
    user = await make_profile()

    denied = await app_client.delete(f"/api/admin/users/{user.id}", headers=auth_headers(admin.id))
    assert denied.status_code == 403

    deleted = await app_client.delete(f"/api/admin/users/{user.id}", headers=auth_headers(super_admin.id))
    assert deleted.status_code == 200

    async with session_maker() as session:
        assert await session.get(Profile, user.id) is None


@pytest.mark.asyncio
async def test_super_admin_cannot_delete_self(app_client, super_admin):
    response = await app_client.delete(
        f"/api/admin/users/{super_admin.id}", headers=auth_headers(super_admin.id)
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Cannot delete your own account"}


# ============================================================================
# ADMINS & BOOTSTRAP
# ============================================================================


@pytest.mark.asyncio
async def test_promote_admin(app_client, super_admin, make_profile):
    await make_profile(email="helper@example.com")

    response = await app_client.post(
        "/api/admin/admins", json={"email": "helper@example.com"}, headers=auth_headers(super_admin.id)
    )
    assert response.status_code == 200

    listing = await app_client.get("/api/admin/admins", headers=auth_headers(super_admin.id))
    assert "helper@example.com" in {a["email"] for a in listing.json()["admins"]}


@pytest.mark.asyncio
async def test_stats(app_client, admin, make_profile):
    await make_profile(credits=30, subscription_plan="base", is_banned=True)

    response = await app_client.get("/api/admin/stats", headers=auth_headers(admin.id))

    stats = response.json()
    assert stats["totalUsers"] == 2
    assert stats["bannedUsers"] == 1
    assert stats["subscribedUsers"] == 1
    assert stats["totalCredits"] == 30


@pytest.mark.asyncio
async def test_first_admin_bootstrap(app_client, session_maker, monkeypatch):
    async def create_auth_user(email, password):
        return "first-admin-id"

    monkeypatch.setattr(supabase_service, "create_auth_user", create_auth_user)

    wrong = await app_client.post(
        "/api/admin/check-first-admin", json={"email": "someone@example.com", "password": "pw"}
    )
    assert wrong.status_code == 400

    response = await app_client.post(
        "/api/admin/check-first-admin", json={"email": "admin@fanova.com", "password": "s3cret"}
    )
    assert response.status_code == 200
    assert response.json()["isFirstAdmin"] is True

    async with session_maker() as session:
        profile = await session.get(Profile, "first-admin-id")
        assert profile.is_admin is True
        assert profile.admin_role == "super_admin"

"""
Tests for Stripe subscription reconciliation and the webhook endpoint
"""

import json

import pytest
from sqlalchemy import func, select

from src.database.models import CreditTransaction, Profile, StripeEvent, SubscriptionHistory
from src.services import stripe_service as stripe_service_module
from src.services.stripe_service import SubscriptionSync, period_key

from conftest import auth_headers


PERIOD_END = 1_900_000_000


def subscription_payload(sub_id="sub_1", customer="cus_1", price="price_essential", status="active"):
    return {
        "id": sub_id,
        "customer": customer,
        "status": status,
        "current_period_end": PERIOD_END,
        "items": {"data": [{"price": {"id": price}}]},
    }


def checkout_payload(user_id, session_id="cs_test_1", plan="essential", status="complete", **metadata):
    return {
        "id": session_id,
        "status": status,
        "subscription": "sub_1",
        "customer": "cus_1",
        "metadata": {"user_id": user_id, "plan_type": plan, **metadata},
    }


class FakeStripeService:
    """Stands in for the Stripe SDK wrapper; signature checks always pass"""

    is_configured = True

    def __init__(self, subscription=None, checkout=None):
        self.subscription = subscription or subscription_payload()
        self.checkout = checkout
        self.retrieved = 0

    async def retrieve_subscription(self, subscription_id):
        self.retrieved += 1
        return self.subscription

    async def retrieve_checkout_session(self, session_id):
        return self.checkout

    def construct_event(self, payload, signature):
        return json.loads(payload)


async def count(session, model, *where):
    stmt = select(func.count()).select_from(model)
    if where:
        stmt = stmt.where(*where)
    return (await session.execute(stmt)).scalar_one()


async def fresh_profile(session, user_id) -> Profile:
    return await session.get(Profile, user_id, populate_existing=True)


# ============================================================================
# RECONCILIATION
# ============================================================================


@pytest.mark.asyncio
async def test_checkout_grants_plan_once(db_session, make_profile):
    user = await make_profile(credits=3, stripe_customer_id="cus_1")
    service = FakeStripeService()
    checkout = checkout_payload(user.id)

    first = await SubscriptionSync.reconcile_checkout_session(db_session, service, checkout)
    second = await SubscriptionSync.reconcile_checkout_session(db_session, service, checkout)

    assert first.processed is True
    assert first.plan == "essential"
    assert first.credits == 250
    assert second.processed is False
    assert second.message == "Checkout session already processed"

    profile = await fresh_profile(db_session, user.id)
    assert profile.subscription_plan == "essential"
    assert profile.credits == 253
    assert profile.stripe_subscription_id == "sub_1"
    assert profile.subscription_renewal_date is not None

    assert await count(db_session, CreditTransaction, CreditTransaction.user_id == user.id) == 1
    assert await count(db_session, SubscriptionHistory, SubscriptionHistory.user_id == user.id) == 1


@pytest.mark.asyncio
async def test_incomplete_checkout_does_nothing(db_session, make_profile):
    user = await make_profile(credits=0)

    result = await SubscriptionSync.reconcile_checkout_session(
        db_session, FakeStripeService(), checkout_payload(user.id, status="open")
    )

    assert result.processed is False
    assert (await fresh_profile(db_session, user.id)).credits == 0


@pytest.mark.asyncio
async def test_period_already_granted_by_subscription_event(db_session, make_profile):
    user = await make_profile(credits=0, stripe_customer_id="cus_1")

    # subscription.created arrives before checkout.session.completed;
    # without a price mapping the plan resolves to base
    assert await SubscriptionSync.handle_subscription_update(db_session, subscription_payload()) is True

    granted = (await fresh_profile(db_session, user.id)).credits
    assert granted == 50
    assert await count(db_session, StripeEvent, StripeEvent.id == period_key("sub_1", PERIOD_END)) == 1

    result = await SubscriptionSync.reconcile_checkout_session(
        db_session, FakeStripeService(), checkout_payload(user.id)
    )

    assert result.processed is True
    assert result.credits == 0
    assert (await fresh_profile(db_session, user.id)).credits == granted
    assert (await fresh_profile(db_session, user.id)).subscription_plan == "essential"


@pytest.mark.asyncio
async def test_subscription_renewal_grants_each_period(db_session, make_profile):
    user = await make_profile(credits=0, subscription_plan="base", stripe_customer_id="cus_9")
    subscription = subscription_payload(sub_id="sub_9", customer="cus_9", price="price_unknown")

    await SubscriptionSync.handle_subscription_update(db_session, subscription)
    await SubscriptionSync.handle_subscription_update(db_session, subscription)
    assert (await fresh_profile(db_session, user.id)).credits == 50

    subscription["current_period_end"] = PERIOD_END + 30 * 86400
    await SubscriptionSync.handle_subscription_update(db_session, subscription)
    assert (await fresh_profile(db_session, user.id)).credits == 100


@pytest.mark.asyncio
async def test_inactive_subscription_grants_nothing(db_session, make_profile):
    user = await make_profile(credits=0, stripe_customer_id="cus_2")

    await SubscriptionSync.handle_subscription_update(
        db_session, subscription_payload(customer="cus_2", status="past_due")
    )

    assert (await fresh_profile(db_session, user.id)).credits == 0


@pytest.mark.asyncio
async def test_subscription_deleted_reverts_to_base(db_session, make_profile):
    user = await make_profile(
        credits=40,
        subscription_plan="ultimate",
        stripe_customer_id="cus_3",
        stripe_subscription_id="sub_3",
    )

    assert await SubscriptionSync.handle_subscription_deleted(
        db_session, subscription_payload(sub_id="sub_3", customer="cus_3")
    ) is True

    profile = await fresh_profile(db_session, user.id)
    assert profile.subscription_plan == "base"
    assert profile.stripe_subscription_id is None
    assert profile.credits == 40


# ============================================================================
# WEBHOOK ENDPOINT
# ============================================================================


def event(event_id, event_type, obj) -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode()


@pytest.mark.asyncio
async def test_webhook_and_sync_grant_once(app_client, session_maker, make_profile, monkeypatch):
    user = await make_profile(credits=0, stripe_customer_id="cus_1")
    checkout = checkout_payload(user.id)
    monkeypatch.setattr(stripe_service_module, "_stripe_service", FakeStripeService(checkout=checkout))

    response = await app_client.post(
        "/api/stripe/webhook",
        content=event("evt_1", "checkout.session.completed", checkout),
        headers={"stripe-signature": "t=1,v1=test"},
    )
    assert response.status_code == 200
    assert response.json() == {"received": True}

    replay = await app_client.post(
        "/api/stripe/webhook",
        content=event("evt_1", "checkout.session.completed", checkout),
        headers={"stripe-signature": "t=1,v1=test"},
    )
    assert replay.json() == {"received": True, "duplicate": True}

    sync = await app_client.post(
        "/api/stripe/sync-session",
        json={"sessionId": "cs_test_1"},
        headers=auth_headers(user.id),
    )
    assert sync.status_code == 200
    assert sync.json()["processed"] is False
    assert sync.json()["credits"] == 250

    async with session_maker() as session:
        assert (await session.get(Profile, user.id)).credits == 250


@pytest.mark.asyncio
async def test_sync_session_of_another_user_forbidden(app_client, make_profile, monkeypatch):
    owner = await make_profile()
    other = await make_profile()
    monkeypatch.setattr(
        stripe_service_module, "_stripe_service", FakeStripeService(checkout=checkout_payload(owner.id))
    )

    response = await app_client.post(
        "/api/stripe/sync-session",
        json={"sessionId": "cs_test_1"},
        headers=auth_headers(other.id),
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_webhook_bad_signature(app_client, monkeypatch):
    service = FakeStripeService()

    def reject(payload, signature):
        raise ValueError("bad payload")

    service.construct_event = reject
    monkeypatch.setattr(stripe_service_module, "_stripe_service", service)

    response = await app_client.post("/api/stripe/webhook", content=b"{}")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_unhandled_event_is_recorded(app_client, session_maker, monkeypatch):
    monkeypatch.setattr(stripe_service_module, "_stripe_service", FakeStripeService())

    response = await app_client.post("/api/stripe/webhook", content=event("evt_9", "invoice.paid", {}))
    assert response.status_code == 200

    async with session_maker() as session:
        assert await count(session, StripeEvent, StripeEvent.id == "evt_9") == 1

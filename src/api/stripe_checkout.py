# coding: utf-8
"""
Stripe Checkout API

- create-checkout-session / session-status / create-portal-session / plans
- webhook: signed Stripe events (checkout + subscription lifecycle)
- sync-session: client-triggered reconciliation after the redirect

Webhook and sync-session share SubscriptionSync, keyed by the checkout
session id, so a subscription is granted exactly once whoever arrives first.
"""

from typing import Any, Dict, Optional

import stripe
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.pricing import get_plan, get_public_pricing
from src.api.auth import Principal, get_current_principal
from src.core.exceptions import FanovaError, to_http_exception
from src.database import crud
from src.database.engine import get_session
from src.services.email_service import email_service
from src.services.stripe_service import (
    ReconcileResult,
    SubscriptionSync,
    get_stripe_service,
    to_dict,
)

# Create router
router = APIRouter(prefix="/stripe", tags=["stripe"])


class CheckoutSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: Optional[str] = Field(None, alias="priceId")
    model_id: Optional[str] = Field(None, alias="modelId")
    selected_image_id: Optional[str] = Field(None, alias="selectedImageId")
    plan_type: Optional[str] = Field(None, alias="planType")


class SyncSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)


async def _queue_confirmation_email(
    session: AsyncSession, background_tasks: BackgroundTasks, result: ReconcileResult
) -> None:
    if not result.processed or not result.user_id:
        return
    profile = await crud.get_profile(session, result.user_id)
    if profile is None or not profile.email:
        return
    plan = get_plan(result.plan)
    background_tasks.add_task(
        email_service.send_subscription_confirmation_email,
        profile.email,
        plan.name if plan else (result.plan or "").capitalize(),
        plan.monthly_credits if plan else result.credits,
        profile.full_name,
    )


# ===========================
# CHECKOUT
# ===========================


@router.post("/create-checkout-session")
async def create_checkout_session(
    body: CheckoutSessionRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Embedded subscription Checkout

    Returns:
        {"clientSecret": "cs_test_..._secret_...", "sessionId": "cs_test_..."}
    """
    if not body.price_id:
        raise HTTPException(status_code=400, detail={"error": "priceId is required"})

    try:
        service = get_stripe_service()

        mapping = await crud.get_price_mapping(session, body.price_id)
        plan_type = mapping.plan_type if mapping else body.plan_type

        customer_id = await service.get_or_create_customer(session, principal.profile)
        checkout = await service.create_checkout_session(
            customer_id=customer_id,
            user_id=principal.user_id,
            price_id=body.price_id,
            plan_type=plan_type,
            model_id=body.model_id,
            selected_image_id=body.selected_image_id,
        )
        return {"clientSecret": checkout["client_secret"], "sessionId": checkout["id"]}

    except FanovaError as e:
        raise to_http_exception(e)
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating checkout session for {principal.user_id}: {e}")
        raise HTTPException(status_code=502, detail="Payment provider error. Please try again.")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Error creating checkout session: {e}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")


@router.get("/session-status")
async def session_status(
    session_id: str = Query(..., min_length=1),
    principal: Principal = Depends(get_current_principal),
) -> Dict[str, Any]:
    try:
        checkout = await get_stripe_service().retrieve_checkout_session(session_id)
    except FanovaError as e:
        raise to_http_exception(e)
    except stripe.StripeError as e:
        logger.error(f"Stripe error retrieving session {session_id}: {e}")
        raise HTTPException(status_code=502, detail="Payment provider error. Please try again.")

    metadata = checkout.get("metadata") or {}
    if metadata.get("user_id") and metadata["user_id"] != principal.user_id and not principal.is_admin:
        raise HTTPException(status_code=404, detail="Checkout session not found")

    return {
        "status": checkout.get("status"),
        "customer_email": (checkout.get("customer_details") or {}).get("email"),
        "metadata": metadata,
    }


@router.post("/create-portal-session")
async def create_portal_session(
    principal: Principal = Depends(get_current_principal),
) -> Dict[str, Any]:
    """Stripe billing portal for the current customer"""
    customer_id = principal.profile.stripe_customer_id
    if not customer_id:
        raise HTTPException(status_code=400, detail={"error": "No Stripe customer found for this account"})

    try:
        url = await get_stripe_service().create_portal_session(customer_id)
        return {"url": url}
    except FanovaError as e:
        raise to_http_exception(e)
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating portal session for {principal.user_id}: {e}")
        raise HTTPException(status_code=502, detail="Payment provider error. Please try again.")


@router.get("/plans")
async def get_plans() -> Dict[str, Any]:
    """Public pricing table"""
    return get_public_pricing()


# ===========================
# RECONCILIATION
# ===========================


@router.post("/sync-session")
async def sync_session(
    body: SyncSessionRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Reconcile a finished Checkout session from the client side

    Safe to call any number of times and in any order with the webhook.

    Returns:
        {"success": true, "processed": false, "message": "Checkout session already processed", "profile": {...}}
    """
    try:
        service = get_stripe_service()
        checkout = await service.retrieve_checkout_session(body.session_id)

        owner = (checkout.get("metadata") or {}).get("user_id")
        if owner != principal.user_id:
            raise HTTPException(status_code=403, detail="Checkout session belongs to another user")

        result = await SubscriptionSync.reconcile_checkout_session(session, service, checkout)
        await _queue_confirmation_email(session, background_tasks, result)

        profile = await crud.get_profile(session, principal.user_id)
        await session.refresh(profile)
        return {
            "success": True,
            "processed": result.processed,
            "message": result.message,
            "plan": profile.subscription_plan,
            "credits": profile.credits,
            "profile": crud.serialize_profile(profile),
        }

    except HTTPException:
        raise
    except FanovaError as e:
        raise to_http_exception(e)
    except stripe.StripeError as e:
        logger.error(f"Stripe error syncing session {body.session_id}: {e}")
        raise HTTPException(status_code=502, detail="Payment provider error. Please try again.")
    except Exception as e:
        logger.exception(f"Error syncing checkout session {body.session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to sync checkout session")


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    stripe_signature: Optional[str] = Header(None),
) -> Dict[str, Any]:
    """
    Stripe webhook

    Security: Stripe-Signature verified against the raw body.
    Replayed event ids are acknowledged without side effects.
    """
    payload = await request.body()
    service = get_stripe_service()

    try:
        event = service.construct_event(payload, stripe_signature)
    except FanovaError as e:
        raise to_http_exception(e)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.error(f"❌ Stripe webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Webhook signature verification failed")

    event_id = event.get("id")
    event_type = event.get("type")
    data = to_dict((event.get("data") or {}).get("object"))

    logger.info(f"📨 Stripe webhook: {event_type} ({event_id})")

    try:
        if await crud.is_stripe_event_processed(session, event_id):
            logger.info(f"Stripe event {event_id} already processed")
            return {"received": True, "duplicate": True}

        if event_type == "checkout.session.completed":
            result = await SubscriptionSync.reconcile_checkout_session(
                session, service, data, event_id=event_id
            )
            if not result.processed and not await crud.is_stripe_event_processed(session, event_id):
                await SubscriptionSync.mark_event(session, event_id, event_type)
            await _queue_confirmation_email(session, background_tasks, result)

        elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
            await SubscriptionSync.handle_subscription_update(session, data, event_id=event_id)

        elif event_type == "customer.subscription.deleted":
            await SubscriptionSync.handle_subscription_deleted(session, data, event_id=event_id)

        else:
            logger.debug(f"Unhandled Stripe event type: {event_type}")
            await SubscriptionSync.mark_event(session, event_id, event_type)

        return {"received": True}

    except FanovaError as e:
        raise to_http_exception(e)
    except stripe.StripeError as e:
        logger.error(f"Stripe error handling webhook {event_id}: {e}")
        raise HTTPException(status_code=502, detail="Payment provider error")
    except Exception as e:
        logger.exception(f"❌ Error handling Stripe webhook {event_id}: {e}")
        raise HTTPException(status_code=500, detail="Webhook handler failed")

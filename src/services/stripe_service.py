# coding: utf-8
"""
Stripe Service (subscriptions via embedded Checkout)

Two parts:
- StripeService: thin async wrapper around the Stripe SDK
- SubscriptionSync: mirrors Checkout / subscription state into profiles

Reconciliation is idempotent. A checkout session is keyed
"checkout:<session_id>" (ledger transaction_id + stripe_events row) and each
billing period "period:<subscription_id>:<period_end>", so the webhook and
the client-triggered sync can run in any order, any number of times, and
credits are granted exactly once.
"""

import json
import logging  # Needed for tenacity before_sleep_log level constants
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

import stripe
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from loguru import logger

from config.config import FRONTEND_URL, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from config.pricing import CURRENCY, get_plan, get_plan_credits
from src.core.exceptions import ConfigurationError
from src.database import crud
from src.database.models import PlanType, Profile, SubscriptionAction
from src.services.credit_service import CreditService


ACTIVE_STATUSES = ("active", "trialing")


def to_dict(obj: Any) -> Dict:
    """Stripe objects -> plain dicts (webhook payloads already are)"""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def timestamp_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), UTC)


def subscription_price_id(subscription: Dict) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


def subscription_period_end(subscription: Dict) -> Optional[int]:
    """current_period_end lives on the subscription in older API versions, on the item in newer ones"""
    if subscription.get("current_period_end"):
        return subscription["current_period_end"]
    items = (subscription.get("items") or {}).get("data") or []
    if items and items[0].get("current_period_end"):
        return items[0]["current_period_end"]
    return None


def checkout_key(session_id: str) -> str:
    return f"checkout:{session_id}"


def period_key(subscription_id: str, period_end: int) -> str:
    return f"period:{subscription_id}:{period_end}"


class StripeService:
    """
    Async wrapper around the synchronous Stripe SDK

    Calls run in the threadpool; connection errors are retried.
    """

    def __init__(self, api_key: str = STRIPE_SECRET_KEY, webhook_secret: str = STRIPE_WEBHOOK_SECRET):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        if api_key:
            stripe.api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @retry(
        retry=retry_if_exception_type(stripe.APIConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call(self, func, *args, **kwargs):
        if not self.is_configured:
            raise ConfigurationError("Payment system not configured")
        return await run_in_threadpool(func, *args, **kwargs)

    # ===========================
    # CUSTOMERS & CHECKOUT
    # ===========================

    async def get_or_create_customer(self, session: AsyncSession, profile: Profile) -> str:
        """Stripe customer id for the profile, created and saved on first use"""
        if profile.stripe_customer_id:
            return profile.stripe_customer_id

        customer = await self._call(
            stripe.Customer.create,
            email=profile.email,
            metadata={"user_id": profile.id},
        )
        profile.stripe_customer_id = customer["id"]
        await session.commit()
        logger.info(f"Created Stripe customer {customer['id']} for user {profile.id}")
        return customer["id"]

    async def create_checkout_session(
        self,
        customer_id: str,
        user_id: str,
        price_id: str,
        plan_type: Optional[str],
        model_id: Optional[str] = None,
        selected_image_id: Optional[str] = None,
    ) -> Dict:
        """
        Embedded subscription Checkout

        Returns:
            {"id", "client_secret"}
        """
        params = {
            "customer": customer_id,
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "ui_mode": "embedded",
            "return_url": (
                f"{FRONTEND_URL}/payment-success?session_id={{CHECKOUT_SESSION_ID}}"
                f"&modelId={model_id or ''}&selectedImageId={selected_image_id or ''}"
            ),
            "metadata": {
                "user_id": user_id,
                "model_id": model_id or "",
                "selected_image_id": selected_image_id or "",
                "plan_type": plan_type or "",
            },
        }

        pricing = get_plan(plan_type)
        if pricing and pricing.trial_days:
            params["subscription_data"] = {"trial_period_days": pricing.trial_days}

        checkout = await self._call(stripe.checkout.Session.create, **params)
        logger.info(f"Checkout session created: {checkout['id']} (plan: {plan_type})")
        return {"id": checkout["id"], "client_secret": checkout["client_secret"]}

    async def retrieve_checkout_session(self, session_id: str) -> Dict:
        return to_dict(await self._call(stripe.checkout.Session.retrieve, session_id))

    async def create_portal_session(self, customer_id: str) -> str:
        portal = await self._call(
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=f"{FRONTEND_URL}/dashboard?tab=settings",
        )
        return portal["url"]

    # ===========================
    # SUBSCRIPTIONS & INVOICES
    # ===========================

    async def retrieve_subscription(self, subscription_id: str) -> Dict:
        return to_dict(await self._call(stripe.Subscription.retrieve, subscription_id))

    async def get_subscription_summary(self, subscription_id: Optional[str]) -> Optional[Dict]:
        """
        Status summary for the admin console (best effort)

        Returns:
            {status, isTrialing, trialEnd, nextPaymentDate, cancelAtPeriodEnd} or None
        """
        if not subscription_id or not self.is_configured:
            return None
        try:
            subscription = await self.retrieve_subscription(subscription_id)
        except stripe.StripeError as e:
            logger.warning(f"Could not fetch Stripe subscription {subscription_id}: {e}")
            return None

        period_end = timestamp_to_datetime(subscription_period_end(subscription))
        trial_end = timestamp_to_datetime(subscription.get("trial_end"))
        return {
            "id": subscription.get("id"),
            "status": subscription.get("status"),
            "isTrialing": subscription.get("status") == "trialing",
            "trialEnd": trial_end.isoformat() if trial_end else None,
            "nextPaymentDate": period_end.isoformat() if period_end else None,
            "cancelAtPeriodEnd": bool(subscription.get("cancel_at_period_end")),
        }

    async def list_invoices(self, customer_id: Optional[str], limit: int = 20) -> List[Dict]:
        """Customer invoices for the admin console (best effort)"""
        if not customer_id or not self.is_configured:
            return []
        try:
            invoices = await self._call(stripe.Invoice.list, customer=customer_id, limit=limit)
        except stripe.StripeError as e:
            logger.warning(f"Could not fetch invoices for {customer_id}: {e}")
            return []

        history = []
        for invoice in to_dict(invoices).get("data", []):
            invoice = to_dict(invoice)
            created = timestamp_to_datetime(invoice.get("created"))
            history.append({
                "id": invoice.get("id"),
                "amount": (invoice.get("amount_paid") or 0) / 100,
                "currency": (invoice.get("currency") or CURRENCY).upper(),
                "status": invoice.get("status"),
                "date": created.isoformat() if created else None,
                "invoiceUrl": invoice.get("hosted_invoice_url"),
            })
        return history

    # ===========================
    # WEBHOOKS
    # ===========================

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict:
        """
        Verify the Stripe-Signature header and parse the event

        Raises:
            ConfigurationError: Webhook secret missing
            stripe.SignatureVerificationError: Bad signature
            ValueError: Invalid payload
        """
        if not self.webhook_secret:
            raise ConfigurationError("Stripe webhook secret not configured")
        stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        return json.loads(payload)


@dataclass
class ReconcileResult:
    """Outcome of mirroring a checkout session"""

    processed: bool
    message: str
    user_id: Optional[str] = None
    plan: Optional[str] = None
    credits: int = 0


class SubscriptionSync:
    """Applies Stripe subscription state to profiles"""

    @staticmethod
    async def resolve_plan(
        session: AsyncSession, metadata_plan: Optional[str], price_id: Optional[str]
    ) -> str:
        """Plan from checkout metadata, else from the price mapping, else base"""
        if metadata_plan and get_plan(metadata_plan):
            return metadata_plan
        if price_id:
            mapping = await crud.get_price_mapping(session, price_id)
            if mapping:
                return mapping.plan_type
        return PlanType.BASE.value

    @staticmethod
    async def reconcile_checkout_session(
        session: AsyncSession,
        service: StripeService,
        checkout: Dict,
        event_id: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Grant the plan bought in a Checkout session

        Safe to call from the webhook and from the client sync endpoint:
        the second caller finds the session key and does nothing.

        Args:
            session: Database session
            service: StripeService (subscription lookup)
            checkout: Checkout session object
            event_id: Webhook event id to record in the same commit
        """
        session_id = checkout["id"]
        key = checkout_key(session_id)

        if await crud.is_stripe_event_processed(session, key):
            if event_id:
                await SubscriptionSync.mark_event(session, event_id, "checkout.session.completed")
            return ReconcileResult(False, "Checkout session already processed")

        if checkout.get("status") != "complete":
            return ReconcileResult(False, f"Checkout session not complete ({checkout.get('status')})")

        metadata = checkout.get("metadata") or {}
        user_id = metadata.get("user_id")
        subscription_id = checkout.get("subscription")
        if isinstance(subscription_id, dict):
            subscription_id = subscription_id.get("id")

        if not user_id or not subscription_id:
            logger.error(f"Checkout session {session_id} missing user_id or subscription")
            return ReconcileResult(False, "Checkout session has no user or subscription")

        profile = await crud.get_profile(session, user_id)
        if profile is None:
            logger.error(f"❌ No profile found for user {user_id} (session {session_id})")
            return ReconcileResult(False, "User profile not found")

        subscription = await service.retrieve_subscription(subscription_id)
        plan = await SubscriptionSync.resolve_plan(
            session, metadata.get("plan_type"), subscription_price_id(subscription)
        )
        period_end = subscription_period_end(subscription)

        profile.subscription_plan = plan
        profile.stripe_subscription_id = subscription_id
        profile.subscription_start_date = datetime.now(UTC)
        profile.subscription_renewal_date = timestamp_to_datetime(period_end)

        # subscription.created may have granted this period already
        period_done = bool(period_end) and await crud.is_stripe_event_processed(
            session, period_key(subscription_id, period_end)
        )

        granted = None
        if not period_done:
            granted = await CreditService.allocate_plan_credits(
                session, user_id, plan, transaction_id=key, commit=False
            )
        credits = get_plan_credits(plan) if granted else 0

        crud.add_subscription_history(
            session,
            user_id=user_id,
            plan_type=plan,
            action=SubscriptionAction.STARTED.value,
            credits_allocated=credits,
            stripe_subscription_id=subscription_id,
        )
        crud.add_stripe_event(session, key, "checkout.session.completed")
        if period_end and not period_done:
            crud.add_stripe_event(session, period_key(subscription_id, period_end), "subscription.period")
        if event_id:
            crud.add_stripe_event(session, event_id, "checkout.session.completed")

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info(f"Checkout session {session_id} reconciled concurrently, skipping")
            return ReconcileResult(False, "Checkout session already processed")

        logger.info(f"✅ Subscription started: user={user_id}, plan={plan}, credits={credits}")

        model_id = metadata.get("model_id")
        selected_image_id = metadata.get("selected_image_id")
        if model_id and selected_image_id:
            model = await crud.get_model(session, model_id)
            if model and model.user_id == user_id:
                image = await crud.select_model_image(session, model, selected_image_id)
                if image:
                    logger.info(f"🔒 Locked image {selected_image_id} as reference for model {model_id}")

        return ReconcileResult(True, "Subscription activated", user_id=user_id, plan=plan, credits=credits)

    @staticmethod
    async def handle_subscription_update(
        session: AsyncSession, subscription: Dict, event_id: Optional[str] = None
    ) -> bool:
        """
        customer.subscription.created / updated

        Plan and renewal date follow Stripe; credits are granted once per
        billing period while the subscription is active or trialing.

        Returns:
            True if the profile was updated
        """
        profile = await SubscriptionSync._profile_for_customer(session, subscription.get("customer"))
        if profile is None:
            if event_id:
                await SubscriptionSync.mark_event(session, event_id, "customer.subscription.updated")
            return False

        subscription_id = subscription["id"]
        plan = await SubscriptionSync.resolve_plan(session, None, subscription_price_id(subscription))
        period_end = subscription_period_end(subscription)

        profile.subscription_plan = plan
        profile.stripe_subscription_id = subscription_id
        profile.subscription_renewal_date = timestamp_to_datetime(period_end)

        credits = 0
        if subscription.get("status") in ACTIVE_STATUSES and period_end:
            key = period_key(subscription_id, period_end)
            if not await crud.is_stripe_event_processed(session, key):
                granted = await CreditService.allocate_plan_credits(
                    session,
                    profile.id,
                    plan,
                    transaction_id=f"subscription:{subscription_id}:{period_end}",
                    commit=False,
                )
                if granted:
                    credits = get_plan_credits(plan)
                crud.add_stripe_event(session, key, "subscription.period")

        if credits:
            crud.add_subscription_history(
                session,
                user_id=profile.id,
                plan_type=plan,
                action=SubscriptionAction.UPDATED.value,
                credits_allocated=credits,
                stripe_subscription_id=subscription_id,
            )
        if event_id:
            crud.add_stripe_event(session, event_id, "customer.subscription.updated")

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info(f"Subscription {subscription_id} period already allocated, skipping")
            return False

        logger.info(f"Subscription update: user={profile.id}, plan={plan}, credits={credits}")
        return True

    @staticmethod
    async def handle_subscription_deleted(
        session: AsyncSession, subscription: Dict, event_id: Optional[str] = None
    ) -> bool:
        """customer.subscription.deleted: revert to base, clear the subscription id"""
        profile = await SubscriptionSync._profile_for_customer(session, subscription.get("customer"))
        if profile is None:
            if event_id:
                await SubscriptionSync.mark_event(session, event_id, "customer.subscription.deleted")
            return False

        profile.subscription_plan = PlanType.BASE.value
        profile.stripe_subscription_id = None

        crud.add_subscription_history(
            session,
            user_id=profile.id,
            plan_type=PlanType.BASE.value,
            action=SubscriptionAction.CANCELLED.value,
            credits_allocated=0,
            stripe_subscription_id=subscription.get("id"),
        )
        if event_id:
            crud.add_stripe_event(session, event_id, "customer.subscription.deleted")

        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return False

        logger.info(f"Subscription cancelled: user={profile.id}, reverted to base")
        return True

    @staticmethod
    async def mark_event(session: AsyncSession, event_id: str, event_type: str) -> None:
        """Record an event that needed no work"""
        crud.add_stripe_event(session, event_id, event_type)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()

    @staticmethod
    async def _profile_for_customer(session: AsyncSession, customer_id: Optional[str]) -> Optional[Profile]:
        if not customer_id:
            return None
        result = await session.execute(select(Profile).where(Profile.stripe_customer_id == customer_id))
        profile = result.scalar_one_or_none()
        if profile is None:
            logger.error(f"No profile found for Stripe customer {customer_id}")
        return profile


# Global singleton
_stripe_service: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get the global StripeService instance (singleton)"""
    global _stripe_service

    if _stripe_service is None:
        _stripe_service = StripeService()

    return _stripe_service

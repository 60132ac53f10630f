"""
Database models for Fanova API

SQLAlchemy 2.0 models with full type hints.
Tables live in the Supabase Postgres database; ids are UUID strings so
profile ids match Supabase auth user ids.
"""

import uuid
from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    JSON,
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Numeric,
    Index,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ===========================
# ENUMS
# ===========================


class PlanType(str, Enum):
    """Subscription plans (profile.subscription_plan is NULL when no plan)"""

    BASE = "base"
    ESSENTIAL = "essential"
    ULTIMATE = "ultimate"


class AdminRole(str, Enum):
    """Admin roles"""

    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class TransactionType(str, Enum):
    """Credit ledger transaction types"""

    GENERATION = "generation"  # Paid image generation (negative)
    FREE_GENERATION = "free_generation"  # Free tier generation (zero amount)
    REFUND = "refund"  # Compensation for failed generation (positive)
    SUBSCRIPTION = "subscription"  # Monthly plan allocation (positive)
    REFERRAL = "referral"  # Referral reward (positive)
    RECHARGE = "recharge"  # Credit pack purchase (positive)
    ADMIN_ADJUSTMENT = "admin_adjustment"  # Manual change by admin (signed)


class AdminActionType(str, Enum):
    """Audit log action types"""

    BAN = "ban"
    UNBAN = "unban"
    LOCK = "lock"
    UNLOCK = "unlock"
    DELETE_USER = "delete_user"
    UPDATE_USER = "update_user"
    CREATE_ADMIN = "create_admin"
    REMOVE_ADMIN = "remove_admin"


class SubscriptionAction(str, Enum):
    """Subscription history actions"""

    STARTED = "started"
    UPDATED = "updated"
    CANCELLED = "cancelled"


class GenerationMethod(str, Enum):
    """How a model persona was defined"""

    DESCRIBE = "describe"
    REFERENCE = "reference"


class JobKind(str, Enum):
    """Generation job kinds"""

    INITIAL = "initial"  # Wizard generation from description/reference images
    CHAT = "chat"  # Chat-based generation for an existing model
    NSFW = "nsfw"  # Wavespeed image edit


class JobStatus(str, Enum):
    """Generation job lifecycle"""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ===========================
# PROFILES
# ===========================


class Profile(Base):
    """
    User profile - one row per Supabase auth user

    Holds the denormalized credit balance; every change to it is mirrored by
    a CreditTransaction row written in the same database transaction.
    """

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid, comment="Supabase auth user id"
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, index=True, nullable=True, comment="User email"
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Display name"
    )

    # Credits & subscription
    credits: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Current credit balance (>= 0)"
    )
    subscription_plan: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True, index=True, comment="base | essential | ultimate | NULL"
    )
    subscription_start_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Current plan start"
    )
    subscription_renewal_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Next renewal (Stripe period end)"
    )
    monthly_credits_allocated: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Credits granted for current period"
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, index=True, nullable=True, comment="Stripe customer id"
    )
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String(255), index=True, nullable=True, comment="Stripe subscription id"
    )

    # Admin
    is_admin: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, comment="Admin access flag"
    )
    admin_role: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True, comment="admin | super_admin"
    )

    # Moderation
    is_banned: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True, comment="Banned flag"
    )
    banned_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    banned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_locked: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True, comment="Locked flag (no spending)"
    )
    locked_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Referrals
    referral_code: Mapped[Optional[str]] = mapped_column(
        String(16), unique=True, index=True, nullable=True, comment="Own referral code (8 chars)"
    )
    referred_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Referrer profile id",
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Relationships
    models: Mapped[List["PersonaModel"]] = relationship(
        "PersonaModel", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email}, credits={self.credits}, plan={self.subscription_plan})>"


# ===========================
# MODELS (PERSONAS)
# ===========================


class PersonaModel(Base):
    """
    A user's AI persona ("model") built through the creation wizard
    """

    __tablename__ = "models"
    __table_args__ = (
        CheckConstraint("age IS NULL OR age >= 18", name="ck_models_adult_age"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
        comment="Owner profile id",
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="Age (>= 18)")
    nationality: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    occupation: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    attributes: Mapped[dict] = mapped_column(
        JSONType, default=dict, nullable=False, comment="Physical attributes (free-form)"
    )
    facial_features: Mapped[dict] = mapped_column(
        JSONType, default=dict, nullable=False, comment="Facial features (free-form)"
    )
    analyzed_features: Mapped[Optional[dict]] = mapped_column(
        JSONType, nullable=True, comment="Reference image analysis result"
    )
    identity_packet: Mapped[Optional[dict]] = mapped_column(
        JSONType, nullable=True, comment="Locked identity prompt + reference images"
    )

    generation_method: Mapped[str] = mapped_column(
        String(20), default=GenerationMethod.DESCRIBE.value, nullable=False
    )
    reference_images: Mapped[list] = mapped_column(
        JSONType, default=list, nullable=False, comment="Uploaded reference image URLs"
    )
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Last base prompt")

    locked_reference_image_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("generated_images.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
        comment="Canonical reference image for future generations",
    )
    selected_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, index=True
    )

    # Relationships
    user: Mapped["Profile"] = relationship("Profile", back_populates="models")
    images: Mapped[List["GeneratedImage"]] = relationship(
        "GeneratedImage",
        back_populates="model",
        cascade="all, delete-orphan",
        passive_deletes=True,
        foreign_keys="GeneratedImage.model_id",
    )

    def __repr__(self) -> str:
        return f"<PersonaModel(id={self.id}, user_id={self.user_id}, name={self.name})>"


class GeneratedImage(Base):
    """
    An image the user explicitly kept (candidates are never stored)
    """

    __tablename__ = "generated_images"
    __table_args__ = (
        # At most one selected image per model
        Index(
            "uq_generated_images_one_selected",
            "model_id",
            unique=True,
            postgresql_where=text("is_selected"),
            sqlite_where=text("is_selected = 1"),
        ),
        Index("ix_generated_images_model_url", "model_id", "image_url"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    model_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("models.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )

    model: Mapped["PersonaModel"] = relationship(
        "PersonaModel", back_populates="images", foreign_keys=[model_id]
    )

    def __repr__(self) -> str:
        return f"<GeneratedImage(id={self.id}, model_id={self.model_id}, selected={self.is_selected})>"


# ===========================
# CREDIT LEDGER
# ===========================


class CreditTransaction(Base):
    """
    Append-only credit ledger

    Features:
    - Signed amount (negative for spend)
    - Balance snapshot after the operation
    - Idempotency via unique transaction_id
    """

    __tablename__ = "credit_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Credits (positive for grant, negative for spend)"
    )
    transaction_type: Mapped[str] = mapped_column(
        String(30), nullable=False, index=True, comment="TransactionType value"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Additional metadata (JSON): plan, options, job_id, etc."
    )
    balance_after: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Balance after transaction"
    )
    transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=True,
        comment="Unique idempotency key (type:entity_id)",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<CreditTransaction(id={self.id}, user_id={self.user_id}, type={self.transaction_type}, amount={self.amount})>"


# ===========================
# REFERRALS
# ===========================


class Referral(Base):
    """
    Referral relationship - a referred user appears at most once
    """

    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referred_id", name="uq_referrals_referred"),
        CheckConstraint("referrer_id <> referred_id", name="ck_referrals_no_self"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False
    )
    referred_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    referral_code: Mapped[str] = mapped_column(String(16), nullable=False)
    credits_awarded_referrer: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credits_awarded_referred: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    referred = relationship("Profile", foreign_keys=[referred_id])

    def __repr__(self) -> str:
        return f"<Referral(id={self.id}, referrer={self.referrer_id}, referred={self.referred_id})>"


# ===========================
# ADMIN AUDIT
# ===========================


class AdminAction(Base):
    """
    Admin audit trail (ban/lock/delete/update/admin management)
    """

    __tablename__ = "admin_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    admin_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(
        String(30), nullable=False, index=True, comment="AdminActionType value"
    )
    target_user_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True, comment="Target profile id"
    )
    details: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Additional details (JSON)"
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<AdminAction(id={self.id}, admin_id={self.admin_id}, action={self.action_type})>"


# ===========================
# SUBSCRIPTIONS / STRIPE
# ===========================


class SubscriptionHistory(Base):
    """Plan changes mirrored from Stripe"""

    __tablename__ = "subscription_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False
    )
    plan_type: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    credits_allocated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )


class StripePriceMapping(Base):
    """Plan -> Stripe price/product (maintained by scripts/setup_stripe_products.py)"""

    __tablename__ = "stripe_price_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_type: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    stripe_price_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    stripe_product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="gbp", nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class StripeEvent(Base):
    """
    Processed Stripe events / checkout sessions

    Primary key is the Stripe event id (evt_...) or "checkout:<session_id>";
    inserting a duplicate key means the work was already done.
    """

    __tablename__ = "stripe_events"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


# ===========================
# GENERATION JOBS
# ===========================


class GenerationJob(Base):
    """
    Server-side state of an image generation request

    Clients poll /api/jobs/{id} instead of guessing progress locally.
    """

    __tablename__ = "generation_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False
    )
    model_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("models.id", ondelete="SET NULL"), index=True, nullable=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False, comment="JobKind value")
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.QUEUED.value, nullable=False, index=True
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False, comment="0-100")
    num_images: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    cost: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Ledger key of the charge"
    )
    user_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    full_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    result_urls: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<GenerationJob(id={self.id}, kind={self.kind}, status={self.status}, progress={self.progress})>"

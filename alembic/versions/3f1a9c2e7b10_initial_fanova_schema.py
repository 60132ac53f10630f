"""initial_fanova_schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-01-12 10:14:52.381905

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Create profiles table
    op.create_table('profiles',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Supabase auth user id'),
        sa.Column('email', sa.String(length=255), nullable=True, comment='User email'),
        sa.Column('full_name', sa.String(length=255), nullable=True, comment='Display name'),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0', comment='Current credit balance (>= 0)'),
        sa.Column('subscription_plan', sa.String(length=20), nullable=True, comment='base | essential | ultimate | NULL'),
        sa.Column('subscription_start_date', sa.DateTime(timezone=True), nullable=True, comment='Current plan start'),
        sa.Column('subscription_renewal_date', sa.DateTime(timezone=True), nullable=True, comment='Next renewal (Stripe period end)'),
        sa.Column('monthly_credits_allocated', sa.Integer(), nullable=False, server_default='0', comment='Credits granted for current period'),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True, comment='Stripe customer id'),
        sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True, comment='Stripe subscription id'),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false(), comment='Admin access flag'),
        sa.Column('admin_role', sa.String(length=20), nullable=True, comment='admin | super_admin'),
        sa.Column('is_banned', sa.Boolean(), nullable=False, server_default=sa.false(), comment='Banned flag'),
        sa.Column('banned_reason', sa.Text(), nullable=True),
        sa.Column('banned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false(), comment='Locked flag (no spending)'),
        sa.Column('locked_reason', sa.Text(), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('referral_code', sa.String(length=16), nullable=True, comment='Own referral code (8 chars)'),
        sa.Column('referred_by', sa.String(length=36), nullable=True, comment='Referrer profile id'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('credits >= 0', name='ck_profiles_credits_non_negative'),
        sa.ForeignKeyConstraint(['referred_by'], ['profiles.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_profiles_email'), 'profiles', ['email'], unique=True)
    op.create_index(op.f('ix_profiles_subscription_plan'), 'profiles', ['subscription_plan'], unique=False)
    op.create_index(op.f('ix_profiles_stripe_customer_id'), 'profiles', ['stripe_customer_id'], unique=True)
    op.create_index(op.f('ix_profiles_stripe_subscription_id'), 'profiles', ['stripe_subscription_id'], unique=False)
    op.create_index(op.f('ix_profiles_is_banned'), 'profiles', ['is_banned'], unique=False)
    op.create_index(op.f('ix_profiles_is_locked'), 'profiles', ['is_locked'], unique=False)
    op.create_index(op.f('ix_profiles_referral_code'), 'profiles', ['referral_code'], unique=True)

    # Create models table (locked reference FK added after generated_images)
    op.create_table('models',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='Owner profile id'),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('age', sa.Integer(), nullable=True, comment='Age (>= 18)'),
        sa.Column('nationality', sa.String(length=100), nullable=True),
        sa.Column('occupation', sa.String(length=100), nullable=True),
        sa.Column('attributes', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}', comment='Physical attributes (free-form)'),
        sa.Column('facial_features', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}', comment='Facial features (free-form)'),
        sa.Column('analyzed_features', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Reference image analysis result'),
        sa.Column('identity_packet', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Locked identity prompt + reference images'),
        sa.Column('generation_method', sa.String(length=20), nullable=False, server_default='describe'),
        sa.Column('reference_images', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]', comment='Uploaded reference image URLs'),
        sa.Column('prompt', sa.Text(), nullable=True, comment='Last base prompt'),
        sa.Column('locked_reference_image_id', sa.String(length=36), nullable=True, comment='Canonical reference image for future generations'),
        sa.Column('selected_image_url', sa.Text(), nullable=True),
        sa.Column('generation_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('age IS NULL OR age >= 18', name='ck_models_adult_age'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_models_user_id'), 'models', ['user_id'], unique=False)
    op.create_index(op.f('ix_models_updated_at'), 'models', ['updated_at'], unique=False)

    # Create generated_images table
    op.create_table('generated_images',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('model_id', sa.String(length=36), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=True),
        sa.Column('is_selected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['model_id'], ['models.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_generated_images_model_id'), 'generated_images', ['model_id'], unique=False)
    op.create_index(op.f('ix_generated_images_created_at'), 'generated_images', ['created_at'], unique=False)
    op.create_index('ix_generated_images_model_url', 'generated_images', ['model_id', 'image_url'], unique=False)
    # At most one selected image per model
    op.create_index(
        'uq_generated_images_one_selected',
        'generated_images',
        ['model_id'],
        unique=True,
        postgresql_where=sa.text('is_selected'),
    )

    op.create_foreign_key(
        'fk_models_locked_reference_image_id',
        'models', 'generated_images',
        ['locked_reference_image_id'], ['id'],
        ondelete='SET NULL',
    )

    # Create credit_transactions table
    op.create_table('credit_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False, comment='Credits (positive for grant, negative for spend)'),
        sa.Column('transaction_type', sa.String(length=30), nullable=False, comment='TransactionType value'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True, comment='Additional metadata (JSON): plan, options, job_id, etc.'),
        sa.Column('balance_after', sa.Integer(), nullable=True, comment='Balance after transaction'),
        sa.Column('transaction_id', sa.String(length=255), nullable=True, comment='Unique idempotency key (type:entity_id)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_credit_transactions_user_id'), 'credit_transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_credit_transactions_transaction_type'), 'credit_transactions', ['transaction_type'], unique=False)
    op.create_index(op.f('ix_credit_transactions_transaction_id'), 'credit_transactions', ['transaction_id'], unique=True)
    op.create_index(op.f('ix_credit_transactions_created_at'), 'credit_transactions', ['created_at'], unique=False)

    # Create referrals table
    op.create_table('referrals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referrer_id', sa.String(length=36), nullable=False),
        sa.Column('referred_id', sa.String(length=36), nullable=False),
        sa.Column('referral_code', sa.String(length=16), nullable=False),
        sa.Column('credits_awarded_referrer', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credits_awarded_referred', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('referrer_id <> referred_id', name='ck_referrals_no_self'),
        sa.ForeignKeyConstraint(['referrer_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referred_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referred_id', name='uq_referrals_referred')
    )
    op.create_index(op.f('ix_referrals_referrer_id'), 'referrals', ['referrer_id'], unique=False)

    # Create admin_actions table
    op.create_table('admin_actions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('admin_id', sa.String(length=36), nullable=False),
        sa.Column('action_type', sa.String(length=30), nullable=False, comment='AdminActionType value'),
        sa.Column('target_user_id', sa.String(length=36), nullable=True, comment='Target profile id'),
        sa.Column('details', sa.Text(), nullable=True, comment='Additional details (JSON)'),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_admin_actions_admin_id'), 'admin_actions', ['admin_id'], unique=False)
    op.create_index(op.f('ix_admin_actions_action_type'), 'admin_actions', ['action_type'], unique=False)
    op.create_index(op.f('ix_admin_actions_target_user_id'), 'admin_actions', ['target_user_id'], unique=False)
    op.create_index(op.f('ix_admin_actions_created_at'), 'admin_actions', ['created_at'], unique=False)

    # Create subscription_history table
    op.create_table('subscription_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('plan_type', sa.String(length=20), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('credits_allocated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_history_user_id'), 'subscription_history', ['user_id'], unique=False)
    op.create_index(op.f('ix_subscription_history_created_at'), 'subscription_history', ['created_at'], unique=False)

    # Create stripe_price_mappings table
    op.create_table('stripe_price_mappings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('plan_type', sa.String(length=20), nullable=False),
        sa.Column('stripe_price_id', sa.String(length=255), nullable=False),
        sa.Column('stripe_product_id', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='gbp'),
        sa.Column('credits', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plan_type')
    )
    op.create_index(op.f('ix_stripe_price_mappings_stripe_price_id'), 'stripe_price_mappings', ['stripe_price_id'], unique=True)

    # Create stripe_events table (processed events / checkout sessions)
    op.create_table('stripe_events',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id')
    )

    # Create generation_jobs table
    op.create_table('generation_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('model_id', sa.String(length=36), nullable=True),
        sa.Column('kind', sa.String(length=20), nullable=False, comment='JobKind value'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='queued'),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0', comment='0-100'),
        sa.Column('num_images', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_free', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('transaction_id', sa.String(length=255), nullable=True, comment='Ledger key of the charge'),
        sa.Column('user_prompt', sa.Text(), nullable=True),
        sa.Column('full_prompt', sa.Text(), nullable=True),
        sa.Column('result_urls', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['model_id'], ['models.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_generation_jobs_user_id'), 'generation_jobs', ['user_id'], unique=False)
    op.create_index(op.f('ix_generation_jobs_model_id'), 'generation_jobs', ['model_id'], unique=False)
    op.create_index(op.f('ix_generation_jobs_status'), 'generation_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_generation_jobs_created_at'), 'generation_jobs', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('generation_jobs')
    op.drop_table('stripe_events')
    op.drop_table('stripe_price_mappings')
    op.drop_table('subscription_history')
    op.drop_table('admin_actions')
    op.drop_table('referrals')
    op.drop_table('credit_transactions')
    op.drop_constraint('fk_models_locked_reference_image_id', 'models', type_='foreignkey')
    op.drop_table('generated_images')
    op.drop_table('models')
    op.drop_table('profiles')

"""initial schema

Revision ID: a1c0e5d2f001
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'a1c0e5d2f001'
down_revision = None
branch_labels = None
depends_on = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_is_admin', 'users', ['is_admin'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    op.create_table(
        'notification_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('email_marketing', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_product', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_billing', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_notification_settings_id', 'notification_settings', ['id'])
    op.create_index('ix_notification_settings_user_id', 'notification_settings', ['user_id'], unique=True)

    op.create_table(
        'templates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False, unique=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_templates_id', 'templates', ['id'])
    op.create_index('ix_templates_slug', 'templates', ['slug'], unique=True)
    op.create_index('ix_templates_category', 'templates', ['category'])

    op.create_table(
        'generated_content',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('template_id', sa.Integer(), sa.ForeignKey('templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('form_data', json_type, nullable=True),
        sa.Column('word_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_generated_content_id', 'generated_content', ['id'])
    op.create_index('ix_generated_content_user_id', 'generated_content', ['user_id'])
    op.create_index('ix_generated_content_template_id', 'generated_content', ['template_id'])
    op.create_index('ix_generated_content_created_at', 'generated_content', ['created_at'])
    op.create_index('idx_generated_content_user_created', 'generated_content', ['user_id', 'created_at'])

    op.create_table(
        'generated_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('style', sa.String(), nullable=True),
        sa.Column('dimensions', sa.String(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_generated_images_id', 'generated_images', ['id'])
    op.create_index('ix_generated_images_user_id', 'generated_images', ['user_id'])
    op.create_index('ix_generated_images_created_at', 'generated_images', ['created_at'])

    op.create_table(
        'credits',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('total_credits', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('used_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reset_date', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_credits_id', 'credits', ['id'])
    op.create_index('ix_credits_user_id', 'credits', ['user_id'], unique=True)

    op.create_table(
        'credits_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('action_type', sa.String(), nullable=False),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_credits_log_id', 'credits_log', ['id'])
    op.create_index('ix_credits_log_user_id', 'credits_log', ['user_id'])
    op.create_index('ix_credits_log_action_type', 'credits_log', ['action_type'])
    op.create_index('ix_credits_log_created_at', 'credits_log', ['created_at'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('plan', sa.String(), nullable=False, server_default='Free'),
        sa.Column('status', sa.String(), nullable=False, server_default='inactive'),
        sa.Column('payment_provider', sa.String(), nullable=True),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('paddle_customer_id', sa.String(), nullable=True),
        sa.Column('paddle_subscription_id', sa.String(), nullable=True),
        sa.Column('paddle_price_id', sa.String(), nullable=True),
        sa.Column('transaction_id', sa.String(), nullable=True),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_subscriptions_id', 'subscriptions', ['id'])
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'], unique=True)
    op.create_index('ix_subscriptions_plan', 'subscriptions', ['plan'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('ix_subscriptions_payment_provider', 'subscriptions', ['payment_provider'])
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'])
    op.create_index('ix_subscriptions_paddle_customer_id', 'subscriptions', ['paddle_customer_id'])
    op.create_index('ix_subscriptions_paddle_subscription_id', 'subscriptions', ['paddle_subscription_id'])
    op.create_index('ix_subscriptions_transaction_id', 'subscriptions', ['transaction_id'])
    op.create_index('ix_subscriptions_created_at', 'subscriptions', ['created_at'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('provider', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=True),
        sa.Column('transaction_id', sa.String(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_provider', 'payments', ['provider'])
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])

    op.create_table(
        'billing_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('provider_event_id', sa.String(), nullable=False),
        sa.Column('payload_json', json_type, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_billing_events_id', 'billing_events', ['id'])
    op.create_index('ix_billing_events_provider', 'billing_events', ['provider'])
    op.create_index('ix_billing_events_event_type', 'billing_events', ['event_type'])
    op.create_index('ix_billing_events_provider_event_id', 'billing_events', ['provider_event_id'], unique=True)
    op.create_index('ix_billing_events_created_at', 'billing_events', ['created_at'])

    op.create_table(
        'admin_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('settings', json_type, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_admin_settings_id', 'admin_settings', ['id'])
    op.create_index('ix_admin_settings_created_at', 'admin_settings', ['created_at'])


def downgrade():
    for table in (
        'admin_settings',
        'billing_events',
        'payments',
        'subscriptions',
        'credits_log',
        'credits',
        'generated_images',
        'generated_content',
        'templates',
        'notification_settings',
        'users',
    ):
        op.drop_table(table)

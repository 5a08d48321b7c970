"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _account_columns():
    """Columns shared by customers and models"""
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('username', sa.String(), nullable=True),
        sa.Column('gender', sa.String(), nullable=True),
        sa.Column('dob', sa.Date(), nullable=True),
        sa.Column('whatsapp', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('country', sa.String(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('profile_url', sa.String(), nullable=True),
        sa.Column('send_push_noti', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('send_sms_noti', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('reset_token', sa.String(), nullable=True),
        sa.Column('reset_token_expiry', sa.DateTime(
            timezone=True), nullable=True),
        sa.Column('reset_token_verified', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('reset_cooldown_until', sa.DateTime(
            timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(
            timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Accounts
    op.create_table('customers',
                    *_account_columns(),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='active'),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_customers_id'), 'customers', ['id'], unique=False)
    op.create_index(op.f('ix_customers_number'),
                    'customers', ['number'], unique=True)
    op.create_index(op.f('ix_customers_whatsapp'),
                    'customers', ['whatsapp'], unique=True)

    op.create_table('models',
                    *_account_columns(),
                    sa.Column('bio', sa.Text(), nullable=True),
                    sa.Column('address', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='pending'),
                    sa.Column('available_status', sa.String(), nullable=False,
                              server_default='offline'),
                    sa.Column('rating', sa.Float(), nullable=False,
                              server_default='0'),
                    sa.Column('total_reviews', sa.Integer(), nullable=False,
                              server_default='0'),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_models_id'), 'models', ['id'], unique=False)
    op.create_index(op.f('ix_models_number'), 'models', ['number'], unique=True)
    op.create_index(op.f('ix_models_whatsapp'),
                    'models', ['whatsapp'], unique=True)

    # Service catalogue
    op.create_table('services',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=False),
                    sa.Column('description', sa.Text(), nullable=True),
                    sa.Column('billing_type', sa.String(), nullable=False,
                              server_default='per_day'),
                    sa.Column('base_rate', sa.Integer(), nullable=False,
                              server_default='0'),
                    sa.Column('hourly_rate', sa.Integer(), nullable=True),
                    sa.Column('one_time_price', sa.Integer(), nullable=True),
                    sa.Column('one_night_price', sa.Integer(), nullable=True),
                    sa.Column('minute_rate', sa.Integer(), nullable=True),
                    sa.Column('commission', sa.Float(), nullable=False,
                              server_default='0'),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='active'),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('name')
                    )
    op.create_index(op.f('ix_services_id'), 'services', ['id'], unique=False)

    op.create_table('model_services',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('model_id', sa.Integer(), nullable=False),
                    sa.Column('service_id', sa.Integer(), nullable=False),
                    sa.Column('custom_rate', sa.Integer(), nullable=True),
                    sa.Column('custom_hourly_rate',
                              sa.Integer(), nullable=True),
                    sa.Column('custom_one_time_price',
                              sa.Integer(), nullable=True),
                    sa.Column('custom_one_night_price',
                              sa.Integer(), nullable=True),
                    sa.Column('custom_minute_rate',
                              sa.Integer(), nullable=True),
                    sa.Column('service_location', sa.String(), nullable=True),
                    sa.Column('is_available', sa.Boolean(), nullable=False,
                              server_default=sa.true()),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='active'),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(
                        ['model_id'], ['models.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['service_id'], ['services.id'], ondelete='CASCADE'),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('model_id', 'service_id',
                                        name='uq_model_service')
                    )
    op.create_index(op.f('ix_model_services_id'),
                    'model_services', ['id'], unique=False)
    op.create_index(op.f('ix_model_services_model_id'),
                    'model_services', ['model_id'], unique=False)
    op.create_index(op.f('ix_model_services_service_id'),
                    'model_services', ['service_id'], unique=False)

    # Wallets and ledger
    op.create_table('wallets',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('customer_id', sa.Integer(), nullable=True),
                    sa.Column('model_id', sa.Integer(), nullable=True),
                    sa.Column('total_balance', sa.Integer(), nullable=False,
                              server_default='0'),
                    sa.Column('total_recharge', sa.Integer(), nullable=False,
                              server_default='0'),
                    sa.Column('total_deposit', sa.Integer(), nullable=False,
                              server_default='0'),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='active'),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.Column('updated_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.CheckConstraint('(customer_id IS NULL) <> (model_id IS NULL)',
                                       name='ck_wallet_single_owner'),
                    sa.ForeignKeyConstraint(
                        ['customer_id'], ['customers.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['model_id'], ['models.id'], ondelete='CASCADE'),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('customer_id'),
                    sa.UniqueConstraint('model_id')
                    )
    op.create_index(op.f('ix_wallets_id'), 'wallets', ['id'], unique=False)

    op.create_table('transactions',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('identifier', sa.String(), nullable=False),
                    sa.Column('amount', sa.Integer(), nullable=False),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='pending'),
                    sa.Column('commission', sa.Integer(), nullable=True),
                    sa.Column('fee', sa.Integer(), nullable=True),
                    sa.Column('payment_slip', sa.String(), nullable=True),
                    sa.Column('reason', sa.Text(), nullable=True),
                    sa.Column('rejection_reason', sa.Text(), nullable=True),
                    sa.Column('customer_id', sa.Integer(), nullable=True),
                    sa.Column('model_id', sa.Integer(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.Column('updated_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(
                        ['customer_id'], ['customers.id'], ondelete='SET NULL'),
                    sa.ForeignKeyConstraint(
                        ['model_id'], ['models.id'], ondelete='SET NULL'),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_transactions_id'),
                    'transactions', ['id'], unique=False)
    op.create_index(op.f('ix_transactions_identifier'),
                    'transactions', ['identifier'], unique=False)
    op.create_index(op.f('ix_transactions_customer_id'),
                    'transactions', ['customer_id'], unique=False)
    op.create_index(op.f('ix_transactions_model_id'),
                    'transactions', ['model_id'], unique=False)

    # Bookings (service bookings and call sessions)
    op.create_table('bookings',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('customer_id', sa.Integer(), nullable=False),
                    sa.Column('model_id', sa.Integer(), nullable=False),
                    sa.Column('model_service_id', sa.Integer(), nullable=True),
                    sa.Column('price', sa.Integer(), nullable=False,
                              server_default='0'),
                    sa.Column('day_amount', sa.Integer(), nullable=True),
                    sa.Column('hours', sa.Integer(), nullable=True),
                    sa.Column('session_type', sa.String(), nullable=True),
                    sa.Column('location', sa.String(), nullable=True),
                    sa.Column('location_lat', sa.Float(), nullable=True),
                    sa.Column('location_lng', sa.Float(), nullable=True),
                    sa.Column('preferred_attire', sa.String(), nullable=True),
                    sa.Column('start_date', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('end_date', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='pending'),
                    sa.Column('payment_status', sa.String(), nullable=False,
                              server_default='pending'),
                    sa.Column('hold_transaction_id',
                              sa.Integer(), nullable=True),
                    sa.Column('release_transaction_id',
                              sa.Integer(), nullable=True),
                    sa.Column('reject_reason', sa.Text(), nullable=True),
                    sa.Column('model_checked_in_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('model_check_in_lat', sa.Float(), nullable=True),
                    sa.Column('model_check_in_lng', sa.Float(), nullable=True),
                    sa.Column('customer_checked_in_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('customer_check_in_lat',
                              sa.Float(), nullable=True),
                    sa.Column('customer_check_in_lng',
                              sa.Float(), nullable=True),
                    sa.Column('model_completed_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('auto_release_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('completion_token', sa.String(), nullable=True),
                    sa.Column('completion_token_expires_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('completed_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('dispute_reason', sa.Text(), nullable=True),
                    sa.Column('disputed_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('call_type', sa.String(), nullable=True),
                    sa.Column('call_status', sa.String(), nullable=True),
                    sa.Column('call_room_id', sa.String(), nullable=True),
                    sa.Column('scheduled_call_time', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('customer_peer_id', sa.String(), nullable=True),
                    sa.Column('model_peer_id', sa.String(), nullable=True),
                    sa.Column('call_ringing_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('call_started_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('call_ended_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('call_last_heartbeat', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.Column('minutes', sa.Integer(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.Column('updated_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(
                        ['customer_id'], ['customers.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['model_id'], ['models.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['model_service_id'], ['model_services.id'], ondelete='SET NULL'),
                    sa.ForeignKeyConstraint(
                        ['hold_transaction_id'], ['transactions.id'], ondelete='SET NULL'),
                    sa.ForeignKeyConstraint(
                        ['release_transaction_id'], ['transactions.id'], ondelete='SET NULL'),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('completion_token'),
                    sa.UniqueConstraint('call_room_id')
                    )
    op.create_index(op.f('ix_bookings_id'), 'bookings', ['id'], unique=False)
    op.create_index(op.f('ix_bookings_customer_id'),
                    'bookings', ['customer_id'], unique=False)
    op.create_index(op.f('ix_bookings_model_id'),
                    'bookings', ['model_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'),
                    'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_call_status'),
                    'bookings', ['call_status'], unique=False)

    # Notifications and web push
    op.create_table('notifications',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('recipient_type', sa.String(), nullable=False),
                    sa.Column('recipient_id', sa.Integer(), nullable=False),
                    sa.Column('type', sa.String(), nullable=False),
                    sa.Column('title', sa.String(), nullable=False),
                    sa.Column('message', sa.Text(), nullable=False),
                    sa.Column('data', sa.JSON(), nullable=True),
                    sa.Column('is_read', sa.Boolean(), nullable=False,
                              server_default=sa.false()),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_notifications_id'),
                    'notifications', ['id'], unique=False)
    op.create_index(op.f('ix_notifications_recipient_id'),
                    'notifications', ['recipient_id'], unique=False)

    op.create_table('push_subscriptions',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('endpoint', sa.Text(), nullable=False),
                    sa.Column('p256dh', sa.String(), nullable=False),
                    sa.Column('auth', sa.String(), nullable=False),
                    sa.Column('user_type', sa.String(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('user_agent', sa.String(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.Column('updated_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('endpoint')
                    )
    op.create_index(op.f('ix_push_subscriptions_id'),
                    'push_subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_push_subscriptions_user_id'),
                    'push_subscriptions', ['user_id'], unique=False)

    # Subscription plans
    op.create_table('subscription_plans',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=False),
                    sa.Column('description', sa.Text(), nullable=True),
                    sa.Column('price', sa.Integer(), nullable=False),
                    sa.Column('duration_days', sa.Integer(), nullable=False),
                    sa.Column('features', sa.JSON(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='active'),
                    sa.Column('is_popular', sa.Boolean(), nullable=False,
                              server_default=sa.false()),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('name')
                    )
    op.create_index(op.f('ix_subscription_plans_id'),
                    'subscription_plans', ['id'], unique=False)

    op.create_table('subscriptions',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('customer_id', sa.Integer(), nullable=False),
                    sa.Column('plan_id', sa.Integer(), nullable=False),
                    sa.Column('start_date', sa.DateTime(
                        timezone=True), nullable=False),
                    sa.Column('end_date', sa.DateTime(
                        timezone=True), nullable=False),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='active'),
                    sa.Column('auto_renew', sa.Boolean(), nullable=False,
                              server_default=sa.false()),
                    sa.Column('payment_method', sa.String(), nullable=True),
                    sa.Column('transaction_id', sa.Integer(), nullable=True),
                    sa.Column('notes', sa.Text(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.Column('updated_at', sa.DateTime(
                        timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(
                        ['customer_id'], ['customers.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['plan_id'], ['subscription_plans.id']),
                    sa.ForeignKeyConstraint(
                        ['transaction_id'], ['transactions.id'], ondelete='SET NULL'),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_subscriptions_id'),
                    'subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_subscriptions_customer_id'),
                    'subscriptions', ['customer_id'], unique=False)

    op.create_table('subscription_history',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('customer_id', sa.Integer(), nullable=False),
                    sa.Column('plan_id', sa.Integer(), nullable=False),
                    sa.Column('start_date', sa.DateTime(
                        timezone=True), nullable=False),
                    sa.Column('end_date', sa.DateTime(
                        timezone=True), nullable=False),
                    sa.Column('status', sa.String(), nullable=False),
                    sa.Column('payment_method', sa.String(), nullable=True),
                    sa.Column('transaction_id', sa.Integer(), nullable=True),
                    sa.Column('notes', sa.Text(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(
                        ['customer_id'], ['customers.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['plan_id'], ['subscription_plans.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_subscription_history_id'),
                    'subscription_history', ['id'], unique=False)
    op.create_index(op.f('ix_subscription_history_customer_id'),
                    'subscription_history', ['customer_id'], unique=False)

    # Reviews
    op.create_table('reviews',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('customer_id', sa.Integer(), nullable=False),
                    sa.Column('model_id', sa.Integer(), nullable=False),
                    sa.Column('booking_id', sa.Integer(), nullable=True),
                    sa.Column('rating', sa.Integer(), nullable=False),
                    sa.Column('title', sa.String(), nullable=True),
                    sa.Column('review_text', sa.Text(), nullable=True),
                    sa.Column('is_anonymous', sa.Boolean(), nullable=False,
                              server_default=sa.false()),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(
                        ['customer_id'], ['customers.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['model_id'], ['models.id'], ondelete='CASCADE'),
                    sa.ForeignKeyConstraint(
                        ['booking_id'], ['bookings.id'], ondelete='SET NULL'),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('customer_id', 'model_id',
                                        name='uq_review_customer_model')
                    )
    op.create_index(op.f('ix_reviews_id'), 'reviews', ['id'], unique=False)
    op.create_index(op.f('ix_reviews_customer_id'),
                    'reviews', ['customer_id'], unique=False)
    op.create_index(op.f('ix_reviews_model_id'),
                    'reviews', ['model_id'], unique=False)

    # Audit trail
    op.create_table('audit_logs',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('action', sa.String(), nullable=False),
                    sa.Column('customer_id', sa.Integer(), nullable=True),
                    sa.Column('model_id', sa.Integer(), nullable=True),
                    sa.Column('description', sa.Text(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='success'),
                    sa.Column('payload', sa.JSON(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_audit_logs_id'),
                    'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'),
                    'audit_logs', ['action'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_audit_logs_action'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_id'), table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index(op.f('ix_reviews_model_id'), table_name='reviews')
    op.drop_index(op.f('ix_reviews_customer_id'), table_name='reviews')
    op.drop_index(op.f('ix_reviews_id'), table_name='reviews')
    op.drop_table('reviews')
    op.drop_index(op.f('ix_subscription_history_customer_id'),
                  table_name='subscription_history')
    op.drop_index(op.f('ix_subscription_history_id'),
                  table_name='subscription_history')
    op.drop_table('subscription_history')
    op.drop_index(op.f('ix_subscriptions_customer_id'),
                  table_name='subscriptions')
    op.drop_index(op.f('ix_subscriptions_id'), table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_index(op.f('ix_subscription_plans_id'),
                  table_name='subscription_plans')
    op.drop_table('subscription_plans')
    op.drop_index(op.f('ix_push_subscriptions_user_id'),
                  table_name='push_subscriptions')
    op.drop_index(op.f('ix_push_subscriptions_id'),
                  table_name='push_subscriptions')
    op.drop_table('push_subscriptions')
    op.drop_index(op.f('ix_notifications_recipient_id'),
                  table_name='notifications')
    op.drop_index(op.f('ix_notifications_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index(op.f('ix_bookings_call_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_model_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_customer_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_id'), table_name='bookings')
    op.drop_table('bookings')
    op.drop_index(op.f('ix_transactions_model_id'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_customer_id'),
                  table_name='transactions')
    op.drop_index(op.f('ix_transactions_identifier'),
                  table_name='transactions')
    op.drop_index(op.f('ix_transactions_id'), table_name='transactions')
    op.drop_table('transactions')
    op.drop_index(op.f('ix_wallets_id'), table_name='wallets')
    op.drop_table('wallets')
    op.drop_index(op.f('ix_model_services_service_id'),
                  table_name='model_services')
    op.drop_index(op.f('ix_model_services_model_id'),
                  table_name='model_services')
    op.drop_index(op.f('ix_model_services_id'), table_name='model_services')
    op.drop_table('model_services')
    op.drop_index(op.f('ix_services_id'), table_name='services')
    op.drop_table('services')
    op.drop_index(op.f('ix_models_whatsapp'), table_name='models')
    op.drop_index(op.f('ix_models_number'), table_name='models')
    op.drop_index(op.f('ix_models_id'), table_name='models')
    op.drop_table('models')
    op.drop_index(op.f('ix_customers_whatsapp'), table_name='customers')
    op.drop_index(op.f('ix_customers_number'), table_name='customers')
    op.drop_index(op.f('ix_customers_id'), table_name='customers')
    op.drop_table('customers')

"""initial marketplace schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_SLOT_CLAUSE = sa.text("appointment_status IN ('pending', 'confirmed')")


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
    ]


def _offering_columns():
    return [
        sa.Column('headline', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('service_photo', sa.String(), nullable=True),
        sa.Column('base_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('appointment_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('appointment_slots', JSONB(), nullable=False, server_default='[]'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('bookings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_reviews', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    ]


def _order_columns():
    """Lifecycle, note and review columns shared by bookings and appointments."""
    return [
        sa.Column('user_notes', sa.String(500), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        sa.Column('cancelled_by', sa.String(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('review', sa.String(500), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    ]


def _booking_columns():
    return [
        sa.Column('booking_date', sa.DateTime(), nullable=False),
        sa.Column('service_snapshot', JSONB(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('down_payment', sa.Float(), nullable=False, server_default='0'),
        sa.Column('platform_fee', sa.Float(), nullable=False, server_default='0'),
        sa.Column('owner_payout', sa.Float(), nullable=False, server_default='0'),
        sa.Column('due_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('payment_intent_id', sa.String(), nullable=True),
        sa.Column('payment_intent_status', sa.String(), nullable=True),
        sa.Column('checkout_session_id', sa.String(), nullable=True),
        sa.Column('checkout_session_url', sa.Text(), nullable=True),
        sa.Column('due_payment_intent_id', sa.String(), nullable=True),
        sa.Column('due_payment_intent_status', sa.String(), nullable=True),
        sa.Column('due_requested_at', sa.DateTime(), nullable=True),
        sa.Column('due_paid_at', sa.DateTime(), nullable=True),
        sa.Column('offline_paid_at', sa.DateTime(), nullable=True),
        sa.Column('paid_via', sa.String(), nullable=True),
        sa.Column('booking_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('provider_notes', sa.String(500), nullable=True),
        *_order_columns(),
    ]


def _appointment_columns():
    return [
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('selected_slot', JSONB(), nullable=False),
        sa.Column('service_snapshot', JSONB(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('down_payment', sa.Float(), nullable=False, server_default='0'),
        sa.Column('platform_fee', sa.Float(), nullable=False, server_default='0'),
        sa.Column('owner_payout', sa.Float(), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('payment_intent_id', sa.String(), nullable=True),
        sa.Column('payment_intent_status', sa.String(), nullable=True),
        sa.Column('checkout_session_id', sa.String(), nullable=True),
        sa.Column('checkout_session_url', sa.Text(), nullable=True),
        sa.Column('paid_via', sa.String(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('appointment_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('provider_notes', sa.String(1000), nullable=True),
        sa.Column('slot_owner_id', UUID(as_uuid=True), nullable=False),
        *_order_columns(),
    ]


def _payment_indexes(table, prefix, owner_label, owner_column, extra=()):
    op.create_index(f'ix_{table}_payment_status', table, ['payment_status'])
    op.create_index(f'ix_{table}_payment_intent_id', table, ['payment_intent_id'])
    op.create_index(f'ix_{table}_checkout_session_id', table, ['checkout_session_id'])
    op.create_index(f'ix_{prefix}_user_created', table, ['user_id', 'created_at'])
    op.create_index(f'ix_{prefix}_{owner_label}_created', table, [owner_column, 'created_at'])
    for column in extra:
        op.create_index(f'ix_{table}_{column}', table, [column])


def _slot_indexes(table, prefix):
    op.create_index(f'ix_{prefix}_slot', table, ['slot_owner_id', 'appointment_date', 'start_time'])
    op.create_index(
        f'uq_{prefix}_active_slot',
        table,
        ['slot_owner_id', 'appointment_date', 'start_time'],
        unique=True,
        postgresql_where=ACTIVE_SLOT_CLAUSE,
    )


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default='true'),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'providers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('completed_jobs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rating', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_reviews', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
    )
    op.create_table(
        'business_owners',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('business_name', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'employees',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('business_owner_id', UUID(as_uuid=True), sa.ForeignKey('business_owners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
    )
    op.create_index('ix_employees_business_owner_id', 'employees', ['business_owner_id'])

    op.create_table(
        'services',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('provider_id', UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        *_offering_columns(),
    )
    op.create_index('ix_services_provider_id', 'services', ['provider_id'])
    op.create_table(
        'employee_services',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('business_owner_id', UUID(as_uuid=True), sa.ForeignKey('business_owners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('categories', JSONB(), nullable=False, server_default='[]'),
        *_offering_columns(),
    )
    op.create_index('ix_employee_services_business_owner_id', 'employee_services', ['business_owner_id'])
    op.create_index('ix_employee_services_employee_id', 'employee_services', ['employee_id'])

    op.create_table(
        'bookings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='SET NULL'), nullable=True),
        sa.Column('provider_id', UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        *_booking_columns(),
    )
    _payment_indexes('bookings', 'bookings', 'provider', 'provider_id', extra=('service_id', 'booking_status', 'due_payment_intent_id'))

    op.create_table(
        'business_owner_bookings',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_service_id', UUID(as_uuid=True), sa.ForeignKey('employee_services.id', ondelete='SET NULL'), nullable=True),
        sa.Column('business_owner_id', UUID(as_uuid=True), sa.ForeignKey('business_owners.id', ondelete='CASCADE'), nullable=False),
        *_booking_columns(),
    )
    _payment_indexes(
        'business_owner_bookings', 'bo_bookings', 'owner', 'business_owner_id',
        extra=('employee_service_id', 'booking_status', 'due_payment_intent_id'),
    )

    op.create_table(
        'appointments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', UUID(as_uuid=True), sa.ForeignKey('services.id', ondelete='SET NULL'), nullable=True),
        sa.Column('provider_id', UUID(as_uuid=True), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        *_appointment_columns(),
    )
    _payment_indexes('appointments', 'appointments', 'provider', 'provider_id', extra=('service_id', 'appointment_status'))
    _slot_indexes('appointments', 'appointments')

    op.create_table(
        'business_owner_appointments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_service_id', UUID(as_uuid=True), sa.ForeignKey('employee_services.id', ondelete='SET NULL'), nullable=True),
        sa.Column('business_owner_id', UUID(as_uuid=True), sa.ForeignKey('business_owners.id', ondelete='CASCADE'), nullable=False),
        *_appointment_columns(),
    )
    _payment_indexes(
        'business_owner_appointments', 'bo_appointments', 'owner', 'business_owner_id',
        extra=('employee_service_id', 'appointment_status'),
    )
    _slot_indexes('business_owner_appointments', 'bo_appointments')

    op.create_table(
        'event_managers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('organization_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
    )
    op.create_table(
        'events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('event_manager_id', UUID(as_uuid=True), sa.ForeignKey('event_managers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_name', sa.String(200), nullable=False),
        sa.Column('maximum_number_of_tickets', sa.Integer(), nullable=False),
        sa.Column('tickets_sold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ticket_price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('ticket_sales_start', sa.DateTime(), nullable=True),
        sa.Column('ticket_sales_end', sa.DateTime(), nullable=True),
        sa.Column('event_start', sa.DateTime(), nullable=True),
        sa.Column('event_end', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='draft'),
        sa.Column('confirmation_code_prefix', sa.String(10), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('tickets_sold >= 0', name='ck_events_tickets_sold_non_negative'),
        sa.CheckConstraint('tickets_sold <= maximum_number_of_tickets', name='ck_events_tickets_sold_cap'),
    )
    op.create_index('ix_events_event_manager_id', 'events', ['event_manager_id'])
    op.create_index('ix_events_status', 'events', ['status'])

    op.create_table(
        'event_ticket_purchases',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('event_id', UUID(as_uuid=True), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_manager_id', UUID(as_uuid=True), sa.ForeignKey('event_managers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('ticket_owners', JSONB(), nullable=False, server_default='[]'),
        sa.Column('ticket_price', sa.Float(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('platform_fee', sa.Float(), nullable=False, server_default='0'),
        sa.Column('event_manager_payout', sa.Float(), nullable=False, server_default='0'),
        sa.Column('payment_intent_id', sa.String(), nullable=True),
        sa.Column('payment_intent_status', sa.String(), nullable=True),
        sa.Column('payment_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('tickets_credited', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 1 AND quantity <= 10', name='ck_ticket_purchases_quantity'),
    )
    op.create_index('ix_event_ticket_purchases_event_id', 'event_ticket_purchases', ['event_id'])
    op.create_index('ix_event_ticket_purchases_event_manager_id', 'event_ticket_purchases', ['event_manager_id'])
    op.create_index('ix_event_ticket_purchases_payment_intent_id', 'event_ticket_purchases', ['payment_intent_id'])
    op.create_index('ix_event_ticket_purchases_payment_status', 'event_ticket_purchases', ['payment_status'])
    op.create_index('ix_ticket_purchases_user_created', 'event_ticket_purchases', ['user_id', 'created_at'])

    op.create_table(
        'payment_refund_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('payment_intent_id', sa.String(), nullable=False),
        sa.Column('refund_id', sa.String(), nullable=True),
        sa.Column('source_model', sa.String(), nullable=False),
        sa.Column('source_id', UUID(as_uuid=True), nullable=False),
        sa.Column('source_payment_field', sa.String(), nullable=False, server_default='payment_intent_id'),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='usd'),
        sa.Column('status', sa.String(), nullable=False, server_default='requested'),
        sa.Column('reason', sa.String(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(), nullable=False, unique=True),
        sa.Column('stripe_error', sa.Text(), nullable=True),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.Column('refunded_by_admin_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_payment_refund_logs_payment_intent_id', 'payment_refund_logs', ['payment_intent_id'])
    op.create_index('ix_payment_refund_logs_refund_id', 'payment_refund_logs', ['refund_id'])
    op.create_index('ix_payment_refund_logs_source_id', 'payment_refund_logs', ['source_id'])
    op.create_index('ix_payment_refund_logs_status', 'payment_refund_logs', ['status'])
    op.create_index('ix_payment_refund_logs_created_at', 'payment_refund_logs', ['created_at'])

    op.create_table(
        'processed_stripe_events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('event_id', sa.String(), nullable=False, unique=True),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='processed'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_processed_stripe_events_event_type', 'processed_stripe_events', ['event_type'])
    op.create_index('ix_processed_stripe_events_status', 'processed_stripe_events', ['status'])
    op.create_index('ix_processed_stripe_events_created_at', 'processed_stripe_events', ['created_at'])


def downgrade() -> None:
    for table in (
        'processed_stripe_events',
        'payment_refund_logs',
        'event_ticket_purchases',
        'events',
        'event_managers',
        'business_owner_appointments',
        'appointments',
        'business_owner_bookings',
        'bookings',
        'employee_services',
        'services',
        'employees',
        'business_owners',
        'providers',
        'users',
    ):
        op.drop_table(table)

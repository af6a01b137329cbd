"""Initial database schema

Revision ID: 0001
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create airports table
    op.create_table('airports',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('icao_code', sa.String(length=4), nullable=True),
        sa.Column('gps_code', sa.String(length=8), nullable=True),
        sa.Column('iata_code', sa.String(length=3), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('municipality', sa.String(length=255), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_airports_icao_code'), 'airports', ['icao_code'], unique=True)
    op.create_index(op.f('ix_airports_gps_code'), 'airports', ['gps_code'], unique=False)
    op.create_index(op.f('ix_airports_iata_code'), 'airports', ['iata_code'], unique=False)

    # Create aircraft table
    op.create_table('aircraft',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('manufacturer', sa.String(length=255), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=True),
        sa.Column('passenger_capacity', sa.Integer(), nullable=True),
        sa.Column('image_url', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    # Create deals table
    op.create_table('deals',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('external_id', sa.String(length=64), nullable=True),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('origin_airport_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('origin_icao', sa.String(length=8), nullable=False),
        sa.Column('origin_city', sa.String(length=255), nullable=False),
        sa.Column('origin_country', sa.String(length=100), nullable=True),
        sa.Column('destination_airport_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('destination_icao', sa.String(length=8), nullable=False),
        sa.Column('destination_city', sa.String(length=255), nullable=False),
        sa.Column('destination_country', sa.String(length=100), nullable=True),
        sa.Column('departure_at', sa.DateTime(), nullable=False),
        sa.Column('aircraft_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('aircraft_name', sa.String(length=255), nullable=True),
        sa.Column('aircraft_type', sa.String(length=255), nullable=True),
        sa.Column('aircraft_category', sa.String(length=32), nullable=True),
        sa.Column('aircraft_image_url', sa.String(length=1024), nullable=True),
        sa.Column('total_seats', sa.Integer(), nullable=False),
        sa.Column('available_seats', sa.Integer(), nullable=False),
        sa.Column('price_type', sa.String(length=16), nullable=False),
        sa.Column('original_price_amount', sa.Integer(), nullable=True),
        sa.Column('discount_price_amount', sa.Integer(), nullable=True),
        sa.Column('price_currency', sa.String(length=3), nullable=False),
        sa.Column('operator_name', sa.String(length=255), nullable=True),
        sa.Column('operator_email', sa.String(length=255), nullable=True),
        sa.Column('operator_phone', sa.String(length=64), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('total_seats > 0', name='ck_deal_total_seats_positive'),
        sa.CheckConstraint('available_seats >= 0', name='ck_deal_available_seats_non_negative'),
        sa.CheckConstraint('available_seats <= total_seats', name='ck_deal_available_seats_lte_total'),
        sa.CheckConstraint(
            "source <> 'PROVIDER' OR external_id IS NOT NULL",
            name='ck_deal_provider_has_external_id'
        ),
        sa.CheckConstraint(
            'original_price_amount IS NULL OR original_price_amount >= 0',
            name='ck_deal_original_price_non_negative'
        ),
        sa.CheckConstraint(
            'discount_price_amount IS NULL OR discount_price_amount >= 0',
            name='ck_deal_discount_price_non_negative'
        ),
        sa.ForeignKeyConstraint(['origin_airport_id'], ['airports.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['destination_airport_id'], ['airports.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['aircraft_id'], ['aircraft.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source', 'external_id', name='uq_deal_source_external_id')
    )
    op.create_index(op.f('ix_deals_external_id'), 'deals', ['external_id'], unique=False)
    op.create_index(op.f('ix_deals_slug'), 'deals', ['slug'], unique=True)
    op.create_index(op.f('ix_deals_source'), 'deals', ['source'], unique=False)
    op.create_index(op.f('ix_deals_status'), 'deals', ['status'], unique=False)
    op.create_index(op.f('ix_deals_departure_at'), 'deals', ['departure_at'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('reference_number', sa.String(length=32), nullable=False),
        sa.Column('deal_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('client_name', sa.String(length=255), nullable=False),
        sa.Column('client_email', sa.String(length=255), nullable=True),
        sa.Column('client_phone', sa.String(length=32), nullable=False),
        sa.Column('requested_seats', sa.Integer(), nullable=False),
        sa.Column('total_price_amount', sa.Integer(), nullable=True),
        sa.Column('price_currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_deadline', sa.DateTime(), nullable=True),
        sa.Column('payment_reference', sa.String(length=64), nullable=True),
        sa.Column('payment_link', sa.String(length=1024), nullable=True),
        sa.Column('approved_by', sa.String(length=255), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=32), nullable=True),
        sa.Column('rejection_note', sa.Text(), nullable=True),
        sa.Column('rejected_by', sa.String(length=255), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('ticket_number', sa.String(length=32), nullable=True),
        sa.Column('confirmed_by', sa.String(length=255), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('receipt_uploaded_at', sa.DateTime(), nullable=True),
        sa.Column('evidence_review_required', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('requested_seats > 0', name='ck_booking_requested_seats_positive'),
        sa.CheckConstraint('length(reference_number) > 0', name='ck_booking_reference_not_empty'),
        sa.CheckConstraint('length(client_phone) > 0', name='ck_booking_client_phone_not_empty'),
        sa.ForeignKeyConstraint(['deal_id'], ['deals.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_number')
    )
    op.create_index(op.f('ix_bookings_reference_number'), 'bookings', ['reference_number'], unique=True)
    op.create_index(op.f('ix_bookings_deal_id'), 'bookings', ['deal_id'], unique=False)
    op.create_index(op.f('ix_bookings_client_phone'), 'bookings', ['client_phone'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_payment_deadline'), 'bookings', ['payment_deadline'], unique=False)

    # Create payments table
    op.create_table('payments',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('commission_percent', sa.Integer(), nullable=False),
        sa.Column('admin_amount', sa.Integer(), nullable=False),
        sa.Column('operator_amount', sa.Integer(), nullable=False),
        sa.Column('confirmed_by', sa.String(length=255), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_payment_amount_non_negative'),
        sa.CheckConstraint('admin_amount + operator_amount = amount', name='ck_payment_split_sums'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id'),
        sa.UniqueConstraint('reference')
    )

    # Create booking_messages table
    op.create_table('booking_messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('direction', sa.String(length=16), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('recipient', sa.String(length=64), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('media_url', sa.String(length=1024), nullable=True),
        sa.Column('provider_message_id', sa.String(length=128), nullable=True),
        sa.Column('attempts', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_messages_booking_id'), 'booking_messages', ['booking_id'], unique=False)
    op.create_index(op.f('ix_booking_messages_status'), 'booking_messages', ['status'], unique=False)

    # Create booking_evidence table
    op.create_table('booking_evidence',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('media_reference', sa.String(length=1024), nullable=True),
        sa.Column('content_type', sa.String(length=128), nullable=True),
        sa.Column('raw_text', sa.Text(), nullable=True),
        sa.Column('sender', sa.String(length=64), nullable=True),
        sa.Column('booking_status_at_receipt', sa.String(length=16), nullable=False),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_evidence_booking_id'), 'booking_evidence', ['booking_id'], unique=False)

    # Create sync_runs table
    op.create_table('sync_runs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('sync_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('triggered_by', sa.String(length=255), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('deals_found', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('deals_created', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('deals_updated', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('deals_removed', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('error_message', sa.String(length=1024), nullable=True),
        sa.Column('errors', sa.JSON(), server_default=sa.text("'[]'"), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_runs_status'), 'sync_runs', ['status'], unique=False)
    op.create_index(op.f('ix_sync_runs_started_at'), 'sync_runs', ['started_at'], unique=False)
    # At most one STARTED run across every process
    op.create_index(
        'uq_sync_runs_single_started',
        'sync_runs',
        ['status'],
        unique=True,
        postgresql_where=sa.text("status = 'STARTED'")
    )

    # Create ticket_counters table
    op.create_table('ticket_counters',
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('value', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('name')
    )

    # Create booking_settings table
    op.create_table('booking_settings',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('payment_window_hours', sa.Integer(), nullable=True),
        sa.Column('commission_percent', sa.Integer(), nullable=True),
        sa.Column('support_phone', sa.String(length=32), nullable=True),
        sa.Column('updated_by', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Create audit_entries table
    op.create_table('audit_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('target_type', sa.String(length=32), nullable=False),
        sa.Column('target_id', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(actor) > 0', name='ck_audit_entry_actor_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_entries_action'), 'audit_entries', ['action'], unique=False)
    op.create_index(op.f('ix_audit_entries_target_id'), 'audit_entries', ['target_id'], unique=False)
    op.create_index(op.f('ix_audit_entries_created_at'), 'audit_entries', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('audit_entries')
    op.drop_table('booking_settings')
    op.drop_table('ticket_counters')
    op.drop_index('uq_sync_runs_single_started', table_name='sync_runs')
    op.drop_table('sync_runs')
    op.drop_table('booking_evidence')
    op.drop_table('booking_messages')
    op.drop_table('payments')
    op.drop_table('bookings')
    op.drop_table('deals')
    op.drop_table('aircraft')
    op.drop_table('airports')

"""Booking core schema.

Revision ID: booking_core_schema
Revises:
Create Date: 2026-10-18

Tables:
- organizations, branches, users
- customers, articles
- rate_contracts, rate_slabs
- bookings, booking_articles
- document_sequences (LR counters per organization, origin code and year)
- audit_logs
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = 'booking_core_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()'))


def upgrade() -> None:
    """Create booking core tables."""

    # ==================== TENANCY ====================
    op.create_table(
        'organizations',
        _id_column(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)

    op.create_table(
        'branches',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(10), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        _timestamp('created_at'),
        sa.UniqueConstraint('organization_id', 'code', name='uq_branch_org_code'),
    )
    op.create_index('ix_branches_organization_id', 'branches', ['organization_id'])

    op.create_table(
        'users',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', UUID(as_uuid=True), sa.ForeignKey('branches.id', ondelete='SET NULL'), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='operator'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])
    op.create_index('ix_users_branch_id', 'users', ['branch_id'])

    # ==================== PARTIES & CATALOGUE ====================
    op.create_table(
        'customers',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', UUID(as_uuid=True), sa.ForeignKey('branches.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(30), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('customer_type', sa.String(20), nullable=False, server_default='individual'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        _timestamp('created_at'),
    )
    op.create_index('ix_customers_organization_id', 'customers', ['organization_id'])

    op.create_table(
        'articles',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', UUID(as_uuid=True), sa.ForeignKey('branches.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('base_rate', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('requires_special_handling', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('is_fragile', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        _timestamp('created_at'),
    )
    op.create_index('ix_articles_organization_id', 'articles', ['organization_id'])
    op.create_index('ix_articles_category', 'articles', ['category'])

    # ==================== RATE CONTRACTS ====================
    op.create_table(
        'rate_contracts',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', UUID(as_uuid=True), sa.ForeignKey('branches.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_id', UUID(as_uuid=True), sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('contract_number', sa.String(50), nullable=False),
        sa.Column('contract_type', sa.String(20), nullable=False, server_default='standard'),
        sa.Column('valid_from', sa.Date, nullable=False),
        sa.Column('valid_until', sa.Date, nullable=False),
        sa.Column('payment_terms', sa.Integer, nullable=False, server_default='30'),
        sa.Column('credit_limit', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('base_discount_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('approved_by', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.UniqueConstraint('organization_id', 'contract_number', name='uq_rate_contract_org_number'),
        sa.CheckConstraint('valid_until >= valid_from', name='ck_rate_contract_validity'),
    )
    op.create_index('ix_rate_contracts_organization_id', 'rate_contracts', ['organization_id'])
    op.create_index('ix_rate_contract_customer_status', 'rate_contracts', ['customer_id', 'status'])

    op.create_table(
        'rate_slabs',
        _id_column(),
        sa.Column('rate_contract_id', UUID(as_uuid=True), sa.ForeignKey('rate_contracts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_location', sa.String(100), nullable=False),
        sa.Column('to_location', sa.String(100), nullable=False),
        sa.Column('article_id', UUID(as_uuid=True), sa.ForeignKey('articles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('article_category', sa.String(100), nullable=True),
        sa.Column('weight_from', sa.Numeric(10, 3), nullable=False, server_default='0'),
        sa.Column('weight_to', sa.Numeric(10, 3), nullable=False),
        sa.Column('charge_basis', sa.String(20), nullable=False, server_default='weight'),
        sa.Column('rate_per_kg', sa.Numeric(14, 4), nullable=True),
        sa.Column('rate_per_unit', sa.Numeric(14, 4), nullable=True),
        sa.Column('minimum_charge', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        _timestamp('created_at'),
        sa.CheckConstraint('weight_from < weight_to', name='ck_rate_slab_weight_range'),
    )
    op.create_index('ix_rate_slab_route', 'rate_slabs', ['rate_contract_id', 'from_location', 'to_location'])

    # ==================== BOOKINGS ====================
    op.create_table(
        'bookings',
        _id_column(),
        sa.Column('lr_number', sa.String(30), nullable=False),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', UUID(as_uuid=True), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('from_branch_id', UUID(as_uuid=True), sa.ForeignKey('branches.id'), nullable=True),
        sa.Column('to_branch_id', UUID(as_uuid=True), sa.ForeignKey('branches.id'), nullable=True),
        sa.Column('from_location', sa.String(100), nullable=False),
        sa.Column('to_location', sa.String(100), nullable=False),
        sa.Column('sender_id', UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('receiver_id', UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='booked'),
        sa.Column('payment_type', sa.String(20), nullable=False),
        sa.Column('urgency', sa.String(20), nullable=False, server_default='standard'),
        sa.Column('booking_date', sa.Date, nullable=False),
        sa.Column('pickup_date', sa.Date, nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('loaded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('in_transit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('unloaded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.UniqueConstraint('organization_id', 'lr_number', name='uq_booking_org_lr_number'),
        sa.CheckConstraint(
            "status IN ('booked', 'loaded', 'in_transit', 'unloaded', 'delivered', 'cancelled')",
            name='ck_booking_status',
        ),
    )
    op.create_index('ix_bookings_organization_id', 'bookings', ['organization_id'])
    op.create_index('ix_bookings_branch_id', 'bookings', ['branch_id'])
    op.create_index('ix_bookings_from_branch_id', 'bookings', ['from_branch_id'])
    op.create_index('ix_bookings_to_branch_id', 'bookings', ['to_branch_id'])
    op.create_index('ix_booking_org_status', 'bookings', ['organization_id', 'status'])

    op.create_table(
        'booking_articles',
        _id_column(),
        sa.Column('booking_id', UUID(as_uuid=True), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer, nullable=False, server_default='1'),
        sa.Column('article_id', UUID(as_uuid=True), sa.ForeignKey('articles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('actual_weight', sa.Numeric(10, 3), nullable=False),
        sa.Column('charged_weight', sa.Numeric(10, 3), nullable=False),
        sa.Column('rate_type', sa.String(20), nullable=False),
        sa.Column('rate_value', sa.Numeric(14, 4), nullable=False),
        sa.Column('charge_basis', sa.String(20), nullable=False),
        sa.Column('rate_source', sa.String(20), nullable=False),
        sa.Column('rate_contract_id', UUID(as_uuid=True), sa.ForeignKey('rate_contracts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('rate_slab_id', UUID(as_uuid=True), sa.ForeignKey('rate_slabs.id', ondelete='SET NULL'), nullable=True),
        sa.Column('freight_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('loading_charges', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('unloading_charges', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('surcharge_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('adjustment_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('declared_value', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        _timestamp('created_at'),
        sa.CheckConstraint('quantity > 0', name='ck_booking_article_quantity'),
    )
    op.create_index('ix_booking_articles_booking_id', 'booking_articles', ['booking_id'])

    # ==================== LR NUMBERING ====================
    op.create_table(
        'document_sequences',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sequence_key', sa.String(20), nullable=False),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('current_number', sa.Integer, nullable=False, server_default='0'),
        sa.Column('padding_length', sa.Integer, nullable=False, server_default='3'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.UniqueConstraint('organization_id', 'sequence_key', 'period', name='uq_document_sequence_org_key_period'),
    )

    # ==================== AUDIT ====================
    op.create_table(
        'audit_logs',
        _id_column(),
        sa.Column('organization_id', UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=True),
        sa.Column('old_values', sa.JSON, nullable=True),
        sa.Column('new_values', sa.JSON, nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('ix_audit_logs_organization_id', 'audit_logs', ['organization_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    """Drop booking core tables."""
    op.drop_table('audit_logs')
    op.drop_table('document_sequences')
    op.drop_table('booking_articles')
    op.drop_table('bookings')
    op.drop_table('rate_slabs')
    op.drop_table('rate_contracts')
    op.drop_table('articles')
    op.drop_table('customers')
    op.drop_table('users')
    op.drop_table('branches')
    op.drop_table('organizations')

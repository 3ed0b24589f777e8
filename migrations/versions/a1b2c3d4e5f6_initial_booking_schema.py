"""Initial booking, payment and loyalty schema.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create tenants, catalog, clients, appointments, loyalty and notification tables."""
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table(
        'professionals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_professionals_tenant_id', 'professionals', ['tenant_id'])

    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('duration_minutes', sa.Integer(), server_default='30'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_services_tenant_id', 'services', ['tenant_id'])

    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(30), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('tenant_id', 'phone', name='uq_clients_tenant_phone'),
    )

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('professional_id', sa.Integer(), nullable=False),
        sa.Column('service_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('client_name', sa.String(255), nullable=False),
        sa.Column('client_phone', sa.String(30), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('confirmation_code', sa.String(4), nullable=True),
        sa.Column('tolerance_expires_at', sa.DateTime(), nullable=True),
        sa.Column('payment_method', sa.String(10), nullable=False, server_default='local'),
        sa.Column('service_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('prepaid_amount', sa.Numeric(10, 2), server_default='0'),
        sa.Column('pix_payment_id', sa.String(100), nullable=True),
        sa.Column('payment_expires_at', sa.DateTime(), nullable=True),
        sa.Column('refunded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('refund_reason', sa.String(500), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['professional_id'], ['professionals.id']),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_appointments_tenant_scheduled', 'appointments', ['tenant_id', 'scheduled_at'])
    op.create_index('ix_appointments_tenant_status', 'appointments', ['tenant_id', 'status'])
    op.create_index('ix_appointments_pix_payment', 'appointments', ['pix_payment_id'])

    op.create_table(
        'loyalty_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('points_type', sa.String(10), nullable=False, server_default='visit'),
        sa.Column('points_per_visit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_per_currency_unit', sa.Numeric(8, 4), nullable=False, server_default='0'),
        sa.Column('min_amount_for_points', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('tenant_id'),
        sa.CheckConstraint('points_per_visit >= 0', name='ck_loyalty_configs_points_per_visit'),
        sa.CheckConstraint('points_per_currency_unit >= 0', name='ck_loyalty_configs_points_per_unit'),
        sa.CheckConstraint('min_amount_for_points >= 0', name='ck_loyalty_configs_min_amount'),
    )

    op.create_table(
        'loyalty_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('contact_handle', sa.String(30), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_earn_at', sa.DateTime(), nullable=True),
        sa.Column('last_redeem_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('tenant_id', 'contact_handle', name='uq_loyalty_balances_tenant_contact'),
        sa.CheckConstraint('points >= 0', name='ck_loyalty_balances_points_non_negative'),
    )

    op.create_table(
        'loyalty_rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('points_required', sa.Integer(), nullable=False),
        sa.Column('reward_type', sa.String(20), nullable=False, server_default='service'),
        sa.Column('reward_value', sa.Numeric(10, 2), server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.CheckConstraint('points_required >= 1', name='ck_loyalty_rewards_points_required'),
    )
    op.create_index('ix_loyalty_rewards_tenant_active', 'loyalty_rewards', ['tenant_id', 'active'])

    op.create_table(
        'loyalty_redemptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('points_spent', sa.Integer(), nullable=False),
        sa.Column('validation_code', sa.String(6), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('reward_name', sa.String(100), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['reward_id'], ['loyalty_rewards.id']),
    )
    op.create_index('ix_loyalty_redemptions_tenant_status', 'loyalty_redemptions', ['tenant_id', 'status'])
    op.create_index('ix_loyalty_redemptions_client', 'loyalty_redemptions', ['client_id', 'created_at'])

    op.create_table(
        'loyalty_accruals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=False),
        sa.Column('contact_handle', sa.String(30), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.UniqueConstraint('appointment_id'),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.String(1000), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_notifications_tenant_created', 'notifications', ['tenant_id', 'created_at'])


def downgrade():
    """Drop all booking tables."""
    op.drop_index('ix_notifications_tenant_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('loyalty_accruals')
    op.drop_index('ix_loyalty_redemptions_client', table_name='loyalty_redemptions')
    op.drop_index('ix_loyalty_redemptions_tenant_status', table_name='loyalty_redemptions')
    op.drop_table('loyalty_redemptions')
    op.drop_index('ix_loyalty_rewards_tenant_active', table_name='loyalty_rewards')
    op.drop_table('loyalty_rewards')
    op.drop_table('loyalty_balances')
    op.drop_table('loyalty_configs')
    op.drop_index('ix_appointments_pix_payment', table_name='appointments')
    op.drop_index('ix_appointments_tenant_status', table_name='appointments')
    op.drop_index('ix_appointments_tenant_scheduled', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('clients')
    op.drop_index('ix_services_tenant_id', table_name='services')
    op.drop_table('services')
    op.drop_index('ix_professionals_tenant_id', table_name='professionals')
    op.drop_table('professionals')
    op.drop_table('tenants')

"""Initial ClubSync schema: clients, club programs, tiers, customers, sessions

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c2e3f4b5d6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_shop', sa.String(255), nullable=False),
        sa.Column('crm_type', sa.String(20), nullable=False),
        sa.Column('org_name', sa.String(255), nullable=False),
        sa.Column('org_contact', sa.String(255), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('website_url', sa.String(500), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('setup_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_shop', 'crm_type', name='uq_clients_tenant_crm')
    )
    op.create_index('ix_clients_tenant_shop', 'clients', ['tenant_shop'])

    op.create_table(
        'club_programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id')
    )

    op.create_table(
        'club_stages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('club_program_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('stage_order', sa.Integer(), nullable=True),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('duration_months', sa.Integer(), nullable=True),
        sa.Column('min_purchase_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('min_ltv_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('upgradable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('crm_club_id', sa.String(100), nullable=True),
        sa.Column('crm_discount_id', sa.String(100), nullable=True),
        sa.Column('sync_status', sa.String(20), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['club_program_id'], ['club_programs.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('crm_id', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_club_member', sa.Boolean(), nullable=True),
        sa.Column('lifetime_value', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'crm_id', name='uq_customers_client_crm')
    )
    op.create_index('ix_customers_client_id', 'customers', ['client_id'])
    op.create_index('ix_customers_email', 'customers', ['email'])

    op.create_table(
        'club_enrollments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('club_stage_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('crm_membership_id', sa.String(100), nullable=True),
        sa.Column('synced_to_crm', sa.Boolean(), nullable=True),
        sa.Column('crm_sync_at', sa.DateTime(), nullable=True),
        sa.Column('crm_sync_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['club_stage_id'], ['club_stages.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_club_enrollments_customer_id', 'club_enrollments', ['customer_id'])
    op.create_index('ix_club_enrollments_crm_membership_id', 'club_enrollments', ['crm_membership_id'])

    op.create_table(
        'enrollment_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('enrollment_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(20), nullable=False),
        sa.Column('old_club_stage_id', sa.Integer(), nullable=True),
        sa.Column('new_club_stage_id', sa.Integer(), nullable=True),
        sa.Column('old_status', sa.String(20), nullable=True),
        sa.Column('new_status', sa.String(20), nullable=True),
        sa.Column('new_expires_at', sa.DateTime(), nullable=True),
        sa.Column('source', sa.String(20), nullable=True),
        sa.Column('changed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['enrollment_id'], ['club_enrollments.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['old_club_stage_id'], ['club_stages.id'], ),
        sa.ForeignKeyConstraint(['new_club_stage_id'], ['club_stages.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_enrollment_history_enrollment_id', 'enrollment_history', ['enrollment_id'])
    op.create_index('ix_enrollment_history_customer_id', 'enrollment_history', ['customer_id'])
    op.create_index('ix_enrollment_history_changed_at', 'enrollment_history', ['changed_at'])

    op.create_table(
        'customer_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('crm_order_id', sa.String(100), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'crm_order_id', name='uq_customer_orders_client_order')
    )
    op.create_index('ix_customer_orders_customer_id', 'customer_orders', ['customer_id'])

    op.create_table(
        'app_sessions',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('tenant_shop', sa.String(255), nullable=False),
        sa.Column('crm_type', sa.String(20), nullable=False),
        sa.Column('user_name', sa.String(255), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('scope', sa.String(500), nullable=True),
        sa.Column('theme', sa.String(10), nullable=True),
        sa.Column('extra', sa.JSON(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_app_sessions_client_id', 'app_sessions', ['client_id'])
    op.create_index('ix_app_sessions_tenant_shop', 'app_sessions', ['tenant_shop'])
    op.create_index('ix_app_sessions_expires_at', 'app_sessions', ['expires_at'])


def downgrade():
    op.drop_index('ix_app_sessions_expires_at', table_name='app_sessions')
    op.drop_index('ix_app_sessions_tenant_shop', table_name='app_sessions')
    op.drop_index('ix_app_sessions_client_id', table_name='app_sessions')
    op.drop_table('app_sessions')
    op.drop_index('ix_customer_orders_customer_id', table_name='customer_orders')
    op.drop_table('customer_orders')
    op.drop_index('ix_enrollment_history_changed_at', table_name='enrollment_history')
    op.drop_index('ix_enrollment_history_customer_id', table_name='enrollment_history')
    op.drop_index('ix_enrollment_history_enrollment_id', table_name='enrollment_history')
    op.drop_table('enrollment_history')
    op.drop_index('ix_club_enrollments_crm_membership_id', table_name='club_enrollments')
    op.drop_index('ix_club_enrollments_customer_id', table_name='club_enrollments')
    op.drop_table('club_enrollments')
    op.drop_index('ix_customers_email', table_name='customers')
    op.drop_index('ix_customers_client_id', table_name='customers')
    op.drop_table('customers')
    op.drop_table('club_stages')
    op.drop_table('club_programs')
    op.drop_index('ix_clients_tenant_shop', table_name='clients')
    op.drop_table('clients')

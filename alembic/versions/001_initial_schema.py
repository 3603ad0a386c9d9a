"""Initial schema: tenancy, accounts, invitations, campaigns, audit logs

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    # properties.managed_by has no FK so accounts <-> properties stays acyclic
    op.create_table(
        'properties',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('managed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_properties_organization_id', 'properties', ['organization_id'])
    op.create_index('ix_properties_managed_by', 'properties', ['managed_by'])

    op.create_table(
        'accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('roles', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('organization_ids', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('properties.id', ondelete='SET NULL'), nullable=True),
        sa.Column('claims_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)

    op.create_table(
        'organization_memberships',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('roles', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('invited_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('account_id', 'organization_id', name='uq_organization_memberships_account_org'),
    )
    op.create_index('ix_organization_memberships_account_id', 'organization_memberships', ['account_id'])
    op.create_index('ix_organization_memberships_organization_id', 'organization_memberships', ['organization_id'])

    op.create_table(
        'resident_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('unit_number', sa.String(50), nullable=True),
        sa.Column('invited_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('invitation_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('account_id', 'property_id', name='uq_resident_profiles_account_property'),
    )
    op.create_index('ix_resident_profiles_account_id', 'resident_profiles', ['account_id'])
    op.create_index('ix_resident_profiles_organization_id', 'resident_profiles', ['organization_id'])
    op.create_index('ix_resident_profiles_property_id', 'resident_profiles', ['property_id'])

    op.create_table(
        'invitations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invitee_email', sa.String(255), nullable=True),
        sa.Column('invitee_name', sa.String(), nullable=True),
        sa.Column('roles_to_assign', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column('target_property_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=True),
        sa.Column('invited_by_role', sa.String(50), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.Enum('pending', 'accepted', 'expired', 'cancelled', name='invitationstatus'), nullable=False, server_default='pending'),
        sa.Column('campaign_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('unit_number', sa.String(50), nullable=True),
        sa.Column('additional_data', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('accepted_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_invitations_organization_id', 'invitations', ['organization_id'])
    op.create_index('ix_invitations_invitee_email', 'invitations', ['invitee_email'])
    op.create_index('ix_invitations_campaign_id', 'invitations', ['campaign_id'])
    op.create_index('ix_invitations_campaign_status', 'invitations', ['campaign_id', 'status'])

    op.create_table(
        'campaigns',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('campaign_type', sa.Enum('csv_import', 'public_link', name='campaigntype'), nullable=False),
        sa.Column('status', sa.Enum('processing', 'active', 'inactive', 'completed', 'expired', 'error', name='campaignstatus'), nullable=False),
        sa.Column('roles_to_assign', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('total_accepted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('error_details', sa.String(), nullable=True),
        sa.Column('total_invited_from_csv', sa.Integer(), nullable=True),
        sa.Column('storage_file_path', sa.String(), nullable=True),
        sa.Column('source_file_name', sa.String(), nullable=True),
        sa.Column('access_url', sa.String(), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "(campaign_type = 'public_link' AND access_url IS NOT NULL AND storage_file_path IS NULL "
            "AND total_invited_from_csv IS NULL) OR "
            "(campaign_type = 'csv_import' AND access_url IS NULL AND storage_file_path IS NOT NULL)",
            name='ck_campaigns_type_fields',
        ),
        sa.CheckConstraint('max_uses IS NULL OR total_accepted <= max_uses', name='ck_campaigns_total_accepted_within_cap'),
    )
    op.create_index('ix_campaigns_organization_id', 'campaigns', ['organization_id'])
    op.create_index('ix_campaigns_property_id', 'campaigns', ['property_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('event_type', sa.Enum(
            'invitation_created', 'invitation_revoked', 'invitation_redeemed', 'invitations_expired',
            'redemption_rejected', 'campaign_created', 'campaign_updated', 'campaign_activated',
            'campaign_deactivated', 'campaign_deleted', 'campaign_expanded', 'campaign_failed',
            'rate_limit_exceeded', 'unauthorized_access',
            name='auditeventtype',
        ), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=True),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_organization_id', 'audit_logs', ['organization_id'])
    op.create_index('ix_audit_logs_account_id', 'audit_logs', ['account_id'])
    op.create_index('ix_audit_logs_event_type', 'audit_logs', ['event_type'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('campaigns')
    op.drop_table('invitations')
    op.drop_table('resident_profiles')
    op.drop_table('organization_memberships')
    op.drop_table('accounts')
    op.drop_table('properties')
    op.drop_table('organizations')
    sa.Enum(name='auditeventtype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='campaignstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='campaigntype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='invitationstatus').drop(op.get_bind(), checkfirst=True)

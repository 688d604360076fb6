"""initial membership schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'member',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('must_change_password', sa.Boolean(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('membership_reference', sa.String(length=50), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('has_paid', sa.Boolean(), nullable=False),
        sa.Column('has_submitted_form', sa.Boolean(), nullable=False),
        sa.Column('form_code', sa.String(length=50), nullable=True),
        sa.Column('card_issued_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deactivated_at', sa.DateTime(), nullable=True),
        sa.Column('deactivated_by', sa.Uuid(), nullable=True),
        sa.Column('deactivation_reason', sa.Text(), nullable=True),
        sa.Column('first_names', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('birth_place', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('address', sa.String(length=200), nullable=True),
        sa.Column('profession', sa.String(length=100), nullable=True),
        sa.Column('city_of_residence', sa.String(length=100), nullable=True),
        sa.Column('arrival_date', sa.Date(), nullable=True),
        sa.Column('employer_or_school', sa.String(length=150), nullable=True),
        sa.Column('id_document_type', sa.String(length=20), nullable=True),
        sa.Column('id_number', sa.String(length=20), nullable=True),
        sa.Column('id_issue_date', sa.Date(), nullable=True),
        sa.Column('spouse_first_name', sa.String(length=100), nullable=True),
        sa.Column('spouse_last_name', sa.String(length=50), nullable=True),
        sa.Column('children_count', sa.Integer(), nullable=False),
        sa.Column('photo_url', sa.Text(), nullable=True),
        sa.Column('signature_url', sa.Text(), nullable=True),
        sa.Column('comment', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['rejected_by'], ['member.id']),
        sa.ForeignKeyConstraint(['deactivated_by'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('form_code'),
    )
    op.create_index('ix_member_username', 'member', ['username'], unique=True)
    op.create_index('ix_member_email', 'member', ['email'], unique=True)
    op.create_index('ix_member_membership_reference', 'member', ['membership_reference'], unique=True)
    op.create_index('ix_member_id_number', 'member', ['id_number'], unique=True)
    op.create_index('ix_member_phone', 'member', ['phone'], unique=True)
    op.create_index('ix_member_status', 'member', ['status'], unique=False)

    op.create_table(
        'member_status_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('old_status', sa.String(length=20), nullable=True),
        sa.Column('new_status', sa.String(length=20), nullable=False),
        sa.Column('changed_by', sa.Uuid(), nullable=True),
        sa.Column('changed_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['member.id']),
        sa.ForeignKeyConstraint(['changed_by'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_member_status_history_member_id', 'member_status_history', ['member_id'], unique=False)

    op.create_table(
        'membership_form',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('snapshot', sa.JSON(), nullable=False),
        sa.Column('document_url', sa.Text(), nullable=False),
        sa.Column('is_active_version', sa.Boolean(), nullable=False),
        sa.Column('resubmission_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_id', 'version', name='uq_membership_form_member_version'),
    )
    op.create_index('ix_membership_form_member_id', 'membership_form', ['member_id'], unique=False)
    op.create_index(
        'uq_membership_form_active_version',
        'membership_form',
        ['member_id'],
        unique=True,
        postgresql_where=sa.text('is_active_version = true'),
        sqlite_where=sa.text('is_active_version = 1'),
    )

    op.create_table(
        'amendment',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('reference_number', sa.String(length=20), nullable=False),
        sa.Column('amendment_type', sa.String(length=20), nullable=False),
        sa.Column('before_snapshot', sa.JSON(), nullable=False),
        sa.Column('requested_values', sa.JSON(), nullable=False),
        sa.Column('changed_fields', sa.JSON(), nullable=False),
        sa.Column('justification', sa.String(length=200), nullable=False),
        sa.Column('supporting_documents', sa.JSON(), nullable=True),
        sa.Column('member_comment', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reviewed_by', sa.Uuid(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('reviewer_comment', sa.String(length=500), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['member.id']),
        sa.ForeignKeyConstraint(['reviewed_by'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_amendment_member_id', 'amendment', ['member_id'], unique=False)
    op.create_index('ix_amendment_reference_number', 'amendment', ['reference_number'], unique=True)
    op.create_index('ix_amendment_status', 'amendment', ['status'], unique=False)
    op.create_index(
        'uq_amendment_pending_per_member',
        'amendment',
        ['member_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'audit_entry',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('member_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['actor_id'], ['member.id']),
        sa.ForeignKeyConstraint(['member_id'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_entry_member_created', 'audit_entry', ['member_id', 'created_at'], unique=False)
    op.create_index('ix_audit_entry_created', 'audit_entry', ['created_at'], unique=False)

    op.create_table(
        'reference_counter',
        sa.Column('family', sa.String(length=64), nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('family'),
    )

    op.create_table(
        'president_signature',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('president_id', sa.Uuid(), nullable=False),
        sa.Column('signature_url', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('uploaded_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['president_id'], ['member.id']),
        sa.ForeignKeyConstraint(['uploaded_by'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('president_signature')
    op.drop_table('reference_counter')
    op.drop_index('ix_audit_entry_created', table_name='audit_entry')
    op.drop_index('ix_audit_entry_member_created', table_name='audit_entry')
    op.drop_table('audit_entry')
    op.drop_index('uq_amendment_pending_per_member', table_name='amendment')
    op.drop_index('ix_amendment_status', table_name='amendment')
    op.drop_index('ix_amendment_reference_number', table_name='amendment')
    op.drop_index('ix_amendment_member_id', table_name='amendment')
    op.drop_table('amendment')
    op.drop_index('uq_membership_form_active_version', table_name='membership_form')
    op.drop_index('ix_membership_form_member_id', table_name='membership_form')
    op.drop_table('membership_form')
    op.drop_index('ix_member_status_history_member_id', table_name='member_status_history')
    op.drop_table('member_status_history')
    op.drop_index('ix_member_status', table_name='member')
    op.drop_index('ix_member_phone', table_name='member')
    op.drop_index('ix_member_id_number', table_name='member')
    op.drop_index('ix_member_membership_reference', table_name='member')
    op.drop_index('ix_member_email', table_name='member')
    op.drop_index('ix_member_username', table_name='member')
    op.drop_table('member')

"""official documents and password reset

Revision ID: 0002_documents_reset
Revises: 0001_initial
Create Date: 2026-10-19 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0002_documents_reset'
down_revision: Union[str, None] = '0001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('member', sa.Column('password_reset_token', sa.String(length=255), nullable=True))
    op.add_column('member', sa.Column('password_reset_expires', sa.DateTime(), nullable=True))
    op.create_index('ix_member_password_reset_token', 'member', ['password_reset_token'], unique=False)

    op.create_table(
        'document_category',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_document_category_name', 'document_category', ['name'], unique=True)

    op.create_table(
        'official_document',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('file_url', sa.Text(), nullable=False),
        sa.Column('file_id', sa.String(length=255), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('original_filename', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('uploaded_by', sa.Uuid(), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['category_id'], ['document_category.id']),
        sa.ForeignKeyConstraint(['uploaded_by'], ['member.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_official_document_category_id', 'official_document', ['category_id'], unique=False)
    op.create_index('ix_official_document_is_active', 'official_document', ['is_active'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_official_document_is_active', table_name='official_document')
    op.drop_index('ix_official_document_category_id', table_name='official_document')
    op.drop_table('official_document')
    op.drop_index('ix_document_category_name', table_name='document_category')
    op.drop_table('document_category')
    op.drop_index('ix_member_password_reset_token', table_name='member')
    op.drop_column('member', 'password_reset_expires')
    op.drop_column('member', 'password_reset_token')

"""Add archive & retention: retention policies and the archive ledger.

Changes:
- Create retention_policies table (one policy per document type)
- Create archive_records table (document-level and version-level entries)
- Partial unique index: at most one document-level archive per document
- Unique index on version_id: a version is archived at most once
- Seed standard document-type policies

Revision ID: 002_add_archive_retention
Revises: 001_clinical_documents_schema
Create Date: 2026-01-12
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_add_archive_retention'
down_revision: Union[str, Sequence[str], None] = '001_clinical_documents_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add retention policy and archive ledger tables."""

    # -------------------------------------------------------------------------
    # 1. Create retention_policies table
    # -------------------------------------------------------------------------
    print("  Creating retention_policies table...")

    op.create_table(
        'retention_policies',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('module_name', sa.String(length=100), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=False),
        sa.Column('auto_action', sa.String(length=50), nullable=False, server_default='ManualReview'),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('module_name', name='uq_retention_policies_module_name'),
        sa.CheckConstraint('duration_months BETWEEN 1 AND 1200', name='ck_retention_policies_duration'),
    )

    # -------------------------------------------------------------------------
    # 2. Create archive_records table
    # -------------------------------------------------------------------------
    print("  Creating archive_records table...")

    op.create_table(
        'archive_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('document_id', sa.Integer(), nullable=False),
        # NULL means the whole document is archived
        sa.Column('version_id', sa.Integer(), nullable=True),
        sa.Column('archived_by', sa.String(length=100), nullable=False),
        sa.Column('reason', sa.String(length=200), nullable=False),
        sa.Column('archive_date', sa.Date(), nullable=False),
        sa.Column('retention_until', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id']),
        sa.ForeignKeyConstraint(['version_id'], ['document_versions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_archive_records_document_level',
        'archive_records',
        ['document_id'],
        unique=True,
        postgresql_where=sa.text('version_id IS NULL'),
    )
    op.create_index('uq_archive_records_version_id', 'archive_records', ['version_id'], unique=True)
    op.create_index('ix_archive_records_retention_until', 'archive_records', ['retention_until'], unique=False)
    op.create_index('ix_archive_records_archive_date', 'archive_records', ['archive_date'], unique=False)

    print("  Created archive_records table with 4 indexes")

    # -------------------------------------------------------------------------
    # 3. Seed default retention policies
    # -------------------------------------------------------------------------
    print("  Seeding default retention policies...")

    op.execute("""
        INSERT INTO retention_policies (module_name, duration_months, auto_action, is_enabled, created_at)
        VALUES
            ('Medical History', 120, 'ManualReview', true, NOW()),
            ('Examination Reports', 60, 'ManualReview', true, NOW()),
            ('Lab Reports', 12, 'NotifyAdmin', true, NOW()),
            ('Prescription Records', 24, 'AutoDelete', true, NOW())
    """)

    print("  Migration complete!")


def downgrade() -> None:
    """Remove archive ledger and retention policies."""

    print("  Dropping archive_records table...")
    op.drop_index('ix_archive_records_archive_date', table_name='archive_records')
    op.drop_index('ix_archive_records_retention_until', table_name='archive_records')
    op.drop_index('uq_archive_records_version_id', table_name='archive_records')
    op.drop_index('uq_archive_records_document_level', table_name='archive_records')
    op.drop_table('archive_records')

    print("  Dropping retention_policies table...")
    op.drop_table('retention_policies')

    print("  Downgrade complete!")

"""Baseline migration - configuration, submissions and audit tables

Revision ID: 0001_intake_baseline
Revises:
Create Date: 2026-10-19

Portable column types only, so the same baseline runs on PostgreSQL and
SQLite.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_intake_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create configuration, submission and audit tables."""

    # ==========================================================================
    # Form configuration (overrides, custom fields, info texts, locations)
    # ==========================================================================
    op.create_table(
        'config_entries',
        sa.Column('key', sa.String(255), primary_key=True),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ==========================================================================
    # Submissions (encrypted payloads)
    # ==========================================================================
    op.create_table(
        'submissions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('location_id', sa.String(64), nullable=False),
        sa.Column('service_key', sa.String(50), nullable=False),
        sa.Column('request_type', sa.String(50), nullable=False),
        sa.Column('submission_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('encrypted_data', sa.Text(), nullable=False),
        sa.Column('signature_data', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_submissions_location_created', 'submissions', ['location_id', 'created_at'])

    op.create_table(
        'submission_files',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'submission_id',
            sa.Integer(),
            sa.ForeignKey('submissions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('file_id', sa.String(64), nullable=False),
        sa.Column('original_name', sa.Text(), nullable=False),
        sa.Column('mime_type', sa.String(100), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_submission_files_submission_id', 'submission_files', ['submission_id'])

    # ==========================================================================
    # Audit log
    # ==========================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(30), nullable=True),
        sa.Column('entity_id', sa.String(64), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_audit_event_created', 'audit_logs', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_audit_event_created', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_submission_files_submission_id', table_name='submission_files')
    op.drop_table('submission_files')
    op.drop_index('idx_submissions_location_created', table_name='submissions')
    op.drop_table('submissions')
    op.drop_table('config_entries')

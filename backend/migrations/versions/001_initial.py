"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2025-01-10

Creates all database tables for the Trainer Registry:
- trainers: Certified trainers with registry numbers and credentials
- email_logs: One row per notification attempt
- admin_users: Operators allowed into the admin console

The unique constraint on trainers.certification_id is what makes
concurrent issuance safe: a losing insert fails and is retried with the
next number.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Trainers Table ────────────────────────────────────────
    op.create_table(
        'trainers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('certification_id', sa.Text(), nullable=False),
        sa.Column('full_name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('specialties', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('issue_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('renewal_due_date', sa.Date(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='Active'),
        sa.Column('photo_url', sa.Text(), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('files', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(),
                  server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('certification_id', name='uq_trainers_certification_id'),
    )

    # Listing is always newest first
    op.create_index('ix_trainers_created_at', 'trainers', ['created_at'])

    # ── Email Logs Table ──────────────────────────────────────
    # trainer_id has no foreign key: history survives trainer deletion
    op.create_table(
        'email_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('trainer_id', sa.String(36), nullable=False),
        sa.Column('trainer_name', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('subject', sa.Text(), nullable=False),
        sa.Column('sent_at', sa.DateTime(),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='PENDING'),
    )

    op.create_index('ix_email_logs_trainer_id', 'email_logs', ['trainer_id'])
    op.create_index('ix_email_logs_sent_at', 'email_logs', ['sent_at'])

    # ── Admin Users Table ─────────────────────────────────────
    op.create_table(
        'admin_users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('full_name', sa.Text(), nullable=True),
        sa.Column('hashed_password', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """Drop all tables in reverse creation order."""
    op.drop_table('admin_users')
    op.drop_index('ix_email_logs_sent_at', table_name='email_logs')
    op.drop_index('ix_email_logs_trainer_id', table_name='email_logs')
    op.drop_table('email_logs')
    op.drop_index('ix_trainers_created_at', table_name='trainers')
    op.drop_table('trainers')

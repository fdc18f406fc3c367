"""
Initial migration - Create issue tables

Revision ID: 001_initial
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all tables."""

    # Create issues table
    op.create_table(
        'issues',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(32), nullable=False),
        sa.Column('priority', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('address', sa.String(500), nullable=False),
        sa.Column('reporter_id', sa.String(64)),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('flag_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_hidden', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime()),
        sa.Column('version', sa.Integer(), nullable=False),
    )

    op.create_index('idx_issue_status', 'issues', ['status'])
    op.create_index('idx_issue_category', 'issues', ['category'])
    op.create_index('idx_issue_reporter', 'issues', ['reporter_id'])
    op.create_index('idx_issue_hidden', 'issues', ['is_hidden'])
    op.create_index('idx_issue_created_at', 'issues', ['created_at'])
    op.create_index('idx_issue_lat_lng', 'issues', ['latitude', 'longitude'])

    # Create status_events table
    op.create_table(
        'status_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(32)),
        sa.Column('to_status', sa.String(32), nullable=False),
        sa.Column('changed_by', sa.String(64), nullable=False),
        sa.Column('comment', sa.Text()),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('issue_id', 'sequence', name='uq_status_event_sequence'),
    )

    op.create_index('idx_status_event_issue', 'status_events', ['issue_id'])

    # Create issue_flags table
    op.create_table(
        'issue_flags',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('flagger_id', sa.String(64), nullable=False),
        sa.Column('reason', sa.String(255)),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('issue_id', 'flagger_id', name='uq_issue_flag_flagger'),
    )

    op.create_index('idx_issue_flag_issue', 'issue_flags', ['issue_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('issue_flags')
    op.drop_table('status_events')
    op.drop_table('issues')

"""
Add issue votes

Revision ID: 002_issue_votes
Revises: 001_initial
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = '002_issue_votes'
down_revision = '001_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the issue_votes table."""
    op.create_table(
        'issue_votes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.String(36), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('voter_id', sa.String(64), nullable=False),
        sa.Column('vote_type', sa.String(32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('issue_id', 'voter_id', name='uq_issue_vote_voter'),
    )

    op.create_index('idx_issue_vote_issue', 'issue_votes', ['issue_id'])


def downgrade() -> None:
    """Drop the issue_votes table."""
    op.drop_index('idx_issue_vote_issue', table_name='issue_votes')
    op.drop_table('issue_votes')

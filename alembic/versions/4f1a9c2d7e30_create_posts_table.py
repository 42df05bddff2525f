"""Create posts table: reddit items, AI analysis and lead workflow columns

Revision ID: 4f1a9c2d7e30
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1a9c2d7e30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('posts',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('selftext', sa.Text(), nullable=True),
        sa.Column('author', sa.Text(), nullable=True),
        sa.Column('subreddit', sa.Text(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('num_comments', sa.Integer(), nullable=True),
        sa.Column('created_utc', sa.Integer(), nullable=True),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('permalink', sa.Text(), nullable=True),
        sa.Column('search_query', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('analyzed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_score', sa.Integer(), nullable=True),
        sa.Column('ai_reasoning', sa.Text(), nullable=True),
        sa.Column('ai_recommendation', sa.Text(), nullable=True),
        sa.Column('ai_should_reach', sa.Text(), nullable=True),
        sa.Column('ai_pain_points', sa.JSON(), nullable=True),
        sa.Column('ai_urgency', sa.Text(), nullable=True),
        sa.Column('analyzed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lead_status', sa.Text(), nullable=False, server_default='new'),
        sa.Column('lead_notes', sa.Text(), nullable=True),
        sa.Column('contacted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_analyzed', 'posts', ['analyzed'])
    op.create_index('idx_ai_score', 'posts', ['ai_score'])
    op.create_index('idx_search_query', 'posts', ['search_query'])
    op.create_index('idx_subreddit', 'posts', ['subreddit'])
    op.create_index('idx_lead_status', 'posts', ['lead_status'])
    op.create_index('idx_created_at', 'posts', ['created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    for name in ('idx_created_at', 'idx_lead_status', 'idx_subreddit',
                 'idx_search_query', 'idx_ai_score', 'idx_analyzed'):
        op.drop_index(name, 'posts')
    op.drop_table('posts')

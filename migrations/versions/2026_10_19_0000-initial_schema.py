"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create initial database schema:
    - tracking_links: operator-created links
    - link_visits: one row per followed link, owned by its link
    """
    bind = op.get_bind()
    existing_tables = inspect(bind).get_table_names()

    if 'tracking_links' not in existing_tables:
        op.create_table(
            'tracking_links',
            sa.Column('id', sa.String(length=32), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('creator_ip', sa.String(length=100), nullable=False),
            sa.Column('note', sa.Text(), nullable=True),
            sa.Column('target_url', sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_tracking_links_created_at', 'tracking_links', ['created_at'])

    if 'link_visits' not in existing_tables:
        # FK is declared inline so SQLite gets it too
        op.create_table(
            'link_visits',
            sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
            sa.Column('link_id', sa.String(length=32), nullable=False),
            sa.Column('visitor_ip', sa.String(length=100), nullable=False),
            sa.Column('user_agent', sa.Text(), nullable=False, server_default=''),
            sa.Column('referer', sa.Text(), nullable=True),
            sa.Column('visited_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('latitude', sa.Float(), nullable=True),
            sa.Column('longitude', sa.Float(), nullable=True),
            sa.Column('accuracy', sa.Float(), nullable=True),
            sa.ForeignKeyConstraint(
                ['link_id'],
                ['tracking_links.id'],
                name='fk_link_visits_link_id',
                ondelete='CASCADE'
            ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_link_visits_link_id', 'link_visits', ['link_id'])
        op.create_index('ix_link_visits_visited_at', 'link_visits', ['visited_at'])


def downgrade() -> None:
    """
    Drop both tables (visits first, they reference links).
    """
    op.drop_index('ix_link_visits_visited_at', table_name='link_visits')
    op.drop_index('ix_link_visits_link_id', table_name='link_visits')
    op.drop_table('link_visits')

    op.drop_index('ix_tracking_links_created_at', table_name='tracking_links')
    op.drop_table('tracking_links')

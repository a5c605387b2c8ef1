"""
create users, feeds, articles

Revision ID: b41c7e2d9a10
Revises:
Create Date: 2026-10-19 09:12:40.518233
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b41c7e2d9a10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(256), nullable=False),
        sa.Column('api_token', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_api_token', 'users', ['api_token'], unique=True)

    op.create_table(
        'feeds',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('title', sa.String(512), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('site_url', sa.String(2048), nullable=True),
        sa.Column('favicon', sa.String(2048), nullable=True),
        sa.Column('category', sa.String(128), nullable=False, server_default='Uncategorized'),
        sa.Column('refresh_interval', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('last_fetched', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'url', name='uq_feed_user_url'),
    )

    op.create_table(
        'articles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('feed_id', sa.Integer(), nullable=False, index=True),
        sa.Column('guid', sa.String(2048), nullable=False),
        sa.Column('title', sa.String(1024), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('content_html', sa.Text(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('author', sa.String(512), nullable=True),
        sa.Column('link', sa.String(2048), nullable=True),
        sa.Column('image_url', sa.String(2048), nullable=True),
        sa.Column('pub_date', sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        sa.Column('is_starred', sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['feed_id'], ['feeds.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('feed_id', 'guid', name='uq_article_feed_guid'),
    )


def downgrade() -> None:
    op.drop_table('articles')
    op.drop_table('feeds')
    op.drop_index('ix_users_api_token', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

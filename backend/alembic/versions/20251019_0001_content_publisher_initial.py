"""teams, users, social integrations and content pieces

Revision ID: 20251019_0001
Revises:
Create Date: 2025-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20251019_0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('teams',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('owner_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table('users',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('hashed_password', sa.String(), nullable=True),
        sa.Column('current_team_id', sa.String(), sa.ForeignKey('teams.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table('social_integrations',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('team_id', sa.String(), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('platform', sa.String(), nullable=False),
        sa.Column('platform_user_id', sa.String(), nullable=False),
        sa.Column('platform_username', sa.String(), nullable=True),
        # Fernet ciphertext
        sa.Column('access_token', sa.String(), nullable=False),
        sa.Column('refresh_token', sa.String(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scopes', sa.JSON(), nullable=True),
        sa.Column('profile_data', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('team_id', 'platform', 'platform_user_id', name='uq_social_integrations_team_platform_user'),
    )
    op.create_index('ix_social_integrations_team_platform_active', 'social_integrations', ['team_id', 'platform', 'is_active'])
    op.create_table('media',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('team_id', sa.String(), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table('content_pieces',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('team_id', sa.String(), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('internal_name', sa.String(), nullable=False),
        sa.Column('briefing_text', sa.Text(), nullable=True),
        sa.Column('research_text', sa.Text(), nullable=True),
        sa.Column('edited_text', sa.Text(), nullable=True),
        sa.Column('publish_to_platforms', sa.JSON(), nullable=True),
        sa.Column('published_platforms', sa.JSON(), nullable=True),
        sa.Column('scheduled_publish_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('publish_status', sa.String(), nullable=False, server_default='not_published'),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_content_pieces_publish_status_schedule', 'content_pieces', ['publish_status', 'scheduled_publish_at'])
    op.create_table('content_piece_media',
        sa.Column('content_piece_id', sa.String(), sa.ForeignKey('content_pieces.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('media_id', sa.String(), sa.ForeignKey('media.id', ondelete='CASCADE'), primary_key=True),
    )


def downgrade():
    op.drop_table('content_piece_media')
    op.drop_index('ix_content_pieces_publish_status_schedule', table_name='content_pieces')
    op.drop_table('content_pieces')
    op.drop_table('media')
    op.drop_index('ix_social_integrations_team_platform_active', table_name='social_integrations')
    op.drop_table('social_integrations')
    op.drop_table('users')
    op.drop_table('teams')

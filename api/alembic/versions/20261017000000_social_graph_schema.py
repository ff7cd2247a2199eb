"""social graph schema

Users, brews, posts and their engagement tables, plus the friend_edge and
notification tables owned by the social-graph services.

Revision ID: 20261017000000
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261017000000'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=nullable, server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('profile_picture_url', sa.Text(), nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'brew',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('brew_method', sa.String(100), nullable=True),
        sa.Column('bean_origin', sa.Text(), nullable=True),
        sa.Column('roaster', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(26), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
    )
    op.create_index('ix_brew_name', 'brew', ['name'])
    op.create_index('ix_brew_brew_method', 'brew', ['brew_method'])
    op.create_index('ix_brew_created_by', 'brew', ['created_by'])
    op.create_index('ix_brew_is_public', 'brew', ['is_public'])

    op.create_table(
        'post',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column(
            'owner_id', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('brew_id', sa.String(26), sa.ForeignKey('brew.id'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('rating', sa.Numeric(2, 1), nullable=True),
        sa.Column('visibility', sa.String(20), nullable=False, server_default='public'),
        _timestamp('created_at'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "visibility IN ('public', 'friends', 'private')", name='ck_post_visibility'
        ),
        sa.CheckConstraint('rating >= 0 AND rating <= 5', name='ck_post_rating'),
    )
    op.create_index('ix_post_owner_id', 'post', ['owner_id'])
    op.create_index('ix_post_brew_id', 'post', ['brew_id'])
    op.create_index('ix_post_owner_created', 'post', ['owner_id', sa.text('created_at DESC')])
    op.create_index(
        'ix_post_visibility_created', 'post', ['visibility', sa.text('created_at DESC')]
    )

    op.create_table(
        'comment',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column(
            'post_id', sa.String(26), sa.ForeignKey('post.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column(
            'parent_comment_id',
            sa.String(26),
            sa.ForeignKey('comment.id', ondelete='CASCADE'),
            nullable=True,
        ),
        sa.Column(
            'owner_id', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('content', sa.Text(), nullable=False),
        _timestamp('created_at'),
    )
    op.create_index('ix_comment_post_id', 'comment', ['post_id'])
    op.create_index('ix_comment_parent_comment_id', 'comment', ['parent_comment_id'])
    op.create_index('ix_comment_owner_id', 'comment', ['owner_id'])

    op.create_table(
        'post_likes',
        sa.Column(
            'post_id', sa.String(26), sa.ForeignKey('post.id', ondelete='CASCADE'), primary_key=True
        ),
        sa.Column(
            'user_id', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True
        ),
        _timestamp('created_at'),
    )
    op.create_index('ix_post_likes_user_id', 'post_likes', ['user_id'])

    op.create_table(
        'post_user_tags',
        sa.Column(
            'post_id', sa.String(26), sa.ForeignKey('post.id', ondelete='CASCADE'), primary_key=True
        ),
        sa.Column(
            'user_id', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True
        ),
        _timestamp('created_at'),
    )
    op.create_index('ix_post_user_tags_user_id', 'post_user_tags', ['user_id'])

    op.create_table(
        'friend_edge',
        sa.Column(
            'owner', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True
        ),
        sa.Column(
            'other', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True
        ),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'blocked')", name='ck_friend_edge_status'
        ),
        sa.CheckConstraint('owner <> other', name='ck_friend_edge_no_self'),
    )
    op.create_index('ix_friend_edge_owner_status', 'friend_edge', ['owner', 'status'])
    op.create_index('ix_friend_edge_other_status', 'friend_edge', ['other', 'status'])

    op.create_table(
        'notification',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column(
            'recipient', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column(
            'actor', sa.String(26), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('reference_id', sa.String(26), nullable=True),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp('created_at'),
        sa.CheckConstraint(
            "type IN ('like', 'comment', 'friend_request', 'tag', 'follow')",
            name='ck_notification_type',
        ),
        sa.CheckConstraint(
            "reference_type IS NULL OR reference_type IN ('post', 'comment', 'friendship')",
            name='ck_notification_reference_type',
        ),
    )
    # Unread badge count
    op.create_index('ix_notification_recipient_read', 'notification', ['recipient', 'is_read'])
    op.create_index(
        'ix_notification_recipient_created',
        'notification',
        ['recipient', sa.text('created_at DESC')],
    )
    op.create_index(
        'ix_notification_dedup',
        'notification',
        ['recipient', 'actor', 'type', 'reference_id', 'created_at'],
    )


def downgrade() -> None:
    op.drop_table('notification')
    op.drop_table('friend_edge')
    op.drop_table('post_user_tags')
    op.drop_table('post_likes')
    op.drop_table('comment')
    op.drop_table('post')
    op.drop_table('brew')
    op.drop_table('users')

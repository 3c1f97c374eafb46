"""create_users_prompts_responses

Revision ID: 3f9c1a7d2b40
Revises:
Create Date: 2026-10-18 09:12:31.402118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c1a7d2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create users (with verification and soft-delete fields), prompts and responses.
    """
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('email_verified', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('verification_code', sa.String(length=6), nullable=True),
        sa.Column('verification_code_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('marked_for_deletion', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pre_deletion_email', sa.String(), nullable=True),
        sa.Column('oauth_provider', sa.String(), nullable=True),
        sa.Column('oauth_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_marked_for_deletion', 'users', ['marked_for_deletion'])
    op.create_index('ix_users_pre_deletion_email', 'users', ['pre_deletion_email'])

    op.create_table(
        'prompts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('content_preview', sa.String(), nullable=False),
        sa.Column('content_blob_key', sa.String(), nullable=False),
        sa.Column('is_public', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('tags', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
    )
    op.create_index('ix_prompts_id', 'prompts', ['id'])
    op.create_index('ix_prompts_user_id', 'prompts', ['user_id'])

    op.create_table(
        'responses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('prompt_id', sa.Uuid(), nullable=False),
        sa.Column('model_name', sa.String(), nullable=False),
        sa.Column('content_preview', sa.String(), nullable=False),
        sa.Column('content_blob_key', sa.String(), nullable=False),
        sa.Column('is_markdown', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['prompt_id'], ['prompts.id']),
    )
    op.create_index('ix_responses_id', 'responses', ['id'])
    op.create_index('ix_responses_prompt_id', 'responses', ['prompt_id'])


def downgrade() -> None:
    """
    Drop responses, prompts and users.
    """
    op.drop_index('ix_responses_prompt_id', table_name='responses')
    op.drop_index('ix_responses_id', table_name='responses')
    op.drop_table('responses')

    op.drop_index('ix_prompts_user_id', table_name='prompts')
    op.drop_index('ix_prompts_id', table_name='prompts')
    op.drop_table('prompts')

    op.drop_index('ix_users_pre_deletion_email', table_name='users')
    op.drop_index('ix_users_marked_for_deletion', table_name='users')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')

"""add_verification_attempts_to_users

Revision ID: 5d2e8b41c7a9
Revises: 3f9c1a7d2b40
Create Date: 2026-10-25 14:07:52.118903

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5d2e8b41c7a9'
down_revision: Union[str, Sequence[str], None] = '3f9c1a7d2b40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add the wrong-code counter to users table."""
    op.add_column(
        'users',
        sa.Column('verification_attempts', sa.Integer(), server_default='0', nullable=False)
    )


def downgrade() -> None:
    """Remove the wrong-code counter from users table."""
    op.drop_column('users', 'verification_attempts')

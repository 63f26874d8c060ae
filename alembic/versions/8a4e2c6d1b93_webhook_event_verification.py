"""Add verified flag to webhook events

Revision ID: 8a4e2c6d1b93
Revises: 3f1c9a2b7d10
Create Date: 2026-10-26 09:41:03.517204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers used by Alembic
revision: str = '8a4e2c6d1b93'
down_revision: Union[str, Sequence[str], None] = '3f1c9a2b7d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    with op.batch_alter_table('webhook_events') as batch_op:
        batch_op.add_column(sa.Column('verified', sa.Boolean(), nullable=False, server_default=sa.false()))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('webhook_events') as batch_op:
        batch_op.drop_column('verified')

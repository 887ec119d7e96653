"""add simplefin_accounts.relinked_at

Revision ID: 8b0d5f3e6a12
Revises: 3e7a91c2d4b0
Create Date: 2026-10-06 16:40:11.502913

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b0d5f3e6a12'
down_revision: Union[str, Sequence[str], None] = '3e7a91c2d4b0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    from sqlalchemy import inspect as sa_inspect
    conn = op.get_bind()
    existing = [c['name'] for c in sa_inspect(conn).get_columns('simplefin_accounts')]

    if 'relinked_at' not in existing:
        op.add_column('simplefin_accounts', sa.Column('relinked_at', sa.DateTime(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('simplefin_accounts') as batch_op:
        batch_op.drop_column('relinked_at')

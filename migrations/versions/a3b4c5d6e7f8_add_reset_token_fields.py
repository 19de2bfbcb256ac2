"""add password reset token fields

Revision ID: a3b4c5d6e7f8
Revises: 7b8c9d0e1f2a
Create Date: 2026-10-06 09:15:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a3b4c5d6e7f8'
down_revision = '7b8c9d0e1f2a'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.add_column(sa.Column('reset_token_hash', sa.String(length=128), nullable=True))
        batch_op.add_column(sa.Column('reset_token_expires_at', sa.DateTime(), nullable=True))
        batch_op.create_index(batch_op.f('ix_accounts_reset_token_hash'), ['reset_token_hash'], unique=False)


def downgrade():
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_accounts_reset_token_hash'))
        batch_op.drop_column('reset_token_expires_at')
        batch_op.drop_column('reset_token_hash')

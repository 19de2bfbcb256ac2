"""add member profile fields

Revision ID: b5c6d7e8f9a0
Revises: a3b4c5d6e7f8
Create Date: 2026-10-19 10:40:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b5c6d7e8f9a0'
down_revision = 'a3b4c5d6e7f8'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.add_column(sa.Column('first_name', sa.String(length=50), nullable=True))
        batch_op.add_column(sa.Column('last_name', sa.String(length=50), nullable=True))
        batch_op.add_column(sa.Column('gender', sa.String(length=10), nullable=True))
        batch_op.add_column(sa.Column('date_of_birth', sa.Date(), nullable=True))
        batch_op.add_column(sa.Column('who_am_i', sa.String(length=1000), nullable=True))
        batch_op.add_column(sa.Column('nric_encrypted', sa.Text(), nullable=True))
        batch_op.add_column(sa.Column('nric_lookup', sa.String(length=64), nullable=True))
        batch_op.create_index(batch_op.f('ix_accounts_nric_lookup'), ['nric_lookup'], unique=True)


def downgrade():
    with op.batch_alter_table('accounts', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_accounts_nric_lookup'))
        batch_op.drop_column('nric_lookup')
        batch_op.drop_column('nric_encrypted')
        batch_op.drop_column('who_am_i')
        batch_op.drop_column('date_of_birth')
        batch_op.drop_column('gender')
        batch_op.drop_column('last_name')
        batch_op.drop_column('first_name')

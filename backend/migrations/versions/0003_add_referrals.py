"""Add referral codes on accounts and the referrals table

Revision ID: 0003_referrals
Revises: 0002_requests_admin
Create Date: 2026-07-14 11:05:00.000000

"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

from backend.migrations.util import get_uuid_type

# revision identifiers, used by Alembic.
revision: str = '0003_referrals'
down_revision: str | None = '0002_requests_admin'
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    uuid_type = get_uuid_type()

    op.add_column('accounts', sa.Column('referral_code', sa.String(16), nullable=True))
    op.create_index('ix_accounts_referral_code', 'accounts', ['referral_code'], unique=True)

    op.create_table(
        'referrals',
        sa.Column('referral_id', uuid_type, nullable=False),
        sa.Column('referrer_id', uuid_type, nullable=False),
        sa.Column('referred_id', uuid_type, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('referrer_reward', sa.Integer(), nullable=False),
        sa.Column('referred_reward', sa.Integer(), nullable=False),
        sa.Column('bonus_granted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['referrer_id'], ['accounts.account_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referred_id'], ['accounts.account_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('referral_id'),
        sa.CheckConstraint('referrer_id <> referred_id', name='ck_referrals_not_self'),
    )
    op.create_index('ix_referrals_referrer_id', 'referrals', ['referrer_id'])
    # An account can only be referred once
    op.create_index('ix_referrals_referred_id', 'referrals', ['referred_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_referrals_referred_id', table_name='referrals')
    op.drop_index('ix_referrals_referrer_id', table_name='referrals')
    op.drop_table('referrals')

    op.drop_index('ix_accounts_referral_code', table_name='accounts')
    with op.batch_alter_table('accounts') as batch_op:
        batch_op.drop_column('referral_code')

"""Initial ledger schema: accounts, ledger entries, matches and match entries

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-06-02 09:00:00.000000

"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

from backend.migrations.util import get_uuid_type

# revision identifiers, used by Alembic.
revision: str = '0001_initial_ledger'
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    uuid_type = get_uuid_type()

    op.create_table(
        'accounts',
        sa.Column('account_id', uuid_type, nullable=False),
        sa.Column('username', sa.String(80), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='player'),
        sa.Column('spendable_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('withdrawable_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('held_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('held_balance >= 0', name='ck_accounts_held_non_negative'),
        sa.PrimaryKeyConstraint('account_id'),
    )

    op.create_table(
        'ledger_entries',
        sa.Column('entry_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', uuid_type, nullable=False),
        sa.Column('kind', sa.String(30), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('is_withdrawable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('related_match_id', uuid_type, nullable=True),
        sa.Column('related_request_id', uuid_type, nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(64), nullable=False, server_default='system'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount <> 0', name='ck_ledger_entries_amount_nonzero'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.account_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('entry_id'),
    )
    op.create_index('ix_ledger_entries_account_id', 'ledger_entries', ['account_id'])
    op.create_index('ix_ledger_entries_kind', 'ledger_entries', ['kind'])
    op.create_index('ix_ledger_entries_related_match_id', 'ledger_entries', ['related_match_id'])
    op.create_index('ix_ledger_entries_related_request_id', 'ledger_entries', ['related_request_id'])
    op.create_index('ix_ledger_entries_account_status', 'ledger_entries', ['account_id', 'status'])
    op.create_index('ix_ledger_entries_match_kind', 'ledger_entries', ['related_match_id', 'kind'])

    op.create_table(
        'matches',
        sa.Column('match_id', uuid_type, nullable=False),
        sa.Column('title', sa.String(120), nullable=True),
        sa.Column('match_type', sa.String(30), nullable=False, server_default='battle_royale'),
        sa.Column('entry_fee', sa.Integer(), nullable=False),
        sa.Column('total_slots', sa.Integer(), nullable=False),
        sa.Column('filled_slots', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('prize_pool', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('first_prize', sa.Integer(), nullable=True),
        sa.Column('second_prize', sa.Integer(), nullable=True),
        sa.Column('third_prize', sa.Integer(), nullable=True),
        sa.Column('coins_per_kill', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='upcoming'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('room_id', sa.String(100), nullable=True),
        sa.Column('room_password', sa.String(100), nullable=True),
        sa.Column('created_by', uuid_type, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('filled_slots >= 0 AND filled_slots <= total_slots', name='ck_matches_slots_in_range'),
        sa.CheckConstraint('entry_fee >= 0', name='ck_matches_entry_fee_non_negative'),
        sa.PrimaryKeyConstraint('match_id'),
    )
    op.create_index('ix_matches_status', 'matches', ['status'])

    op.create_table(
        'match_entries',
        sa.Column('entry_id', uuid_type, nullable=False),
        sa.Column('match_id', uuid_type, nullable=False),
        sa.Column('account_id', uuid_type, nullable=False),
        sa.Column('slot_number', sa.Integer(), nullable=False),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('entry_fee_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ledger_entry_id', sa.Integer(), nullable=True),
        sa.Column('kills', sa.Integer(), nullable=True),
        sa.Column('placement', sa.Integer(), nullable=True),
        sa.Column('result_status', sa.String(20), nullable=False, server_default='none'),
        sa.Column('result_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by', uuid_type, nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verification_note', sa.Text(), nullable=True),
        sa.Column('refunded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['match_id'], ['matches.match_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.account_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('entry_id'),
        sa.UniqueConstraint('match_id', 'account_id', name='uq_match_entries_match_account'),
        sa.UniqueConstraint('match_id', 'slot_number', name='uq_match_entries_match_slot'),
    )
    op.create_index('ix_match_entries_match_id', 'match_entries', ['match_id'])
    op.create_index('ix_match_entries_account_id', 'match_entries', ['account_id'])


def downgrade() -> None:
    op.drop_index('ix_match_entries_account_id', table_name='match_entries')
    op.drop_index('ix_match_entries_match_id', table_name='match_entries')
    op.drop_table('match_entries')

    op.drop_index('ix_matches_status', table_name='matches')
    op.drop_table('matches')

    op.drop_index('ix_ledger_entries_match_kind', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_account_status', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_related_request_id', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_related_match_id', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_kind', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_account_id', table_name='ledger_entries')
    op.drop_table('ledger_entries')

    op.drop_table('accounts')

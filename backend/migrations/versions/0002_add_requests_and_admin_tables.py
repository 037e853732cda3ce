"""Add withdrawal and top-up requests, notifications, audit log, daily rewards and system config

Revision ID: 0002_requests_admin
Revises: 0001_initial_ledger
Create Date: 2026-06-09 14:30:00.000000

"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

from backend.migrations.util import get_uuid_type, pending_only

# revision identifiers, used by Alembic.
revision: str = '0002_requests_admin'
down_revision: str | None = '0001_initial_ledger'
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _request_columns(uuid_type) -> list[sa.Column]:
    """Columns shared by withdrawal and top-up requests."""
    return [
        sa.Column('request_id', uuid_type, nullable=False),
        sa.Column('account_id', uuid_type, nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('ledger_entry_id', sa.Integer(), nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_by', uuid_type, nullable=True),
        sa.Column('admin_note', sa.Text(), nullable=True),
    ]


def _create_request_indexes(table: str) -> None:
    op.create_index(f'ix_{table}_account_id', table, ['account_id'])
    op.create_index(f'ix_{table}_status', table, ['status'])
    op.create_index(f'ix_{table}_requested_at', table, ['requested_at'])
    # At most one pending request per account
    op.create_index(
        f'uq_{table}_one_pending',
        table,
        ['account_id'],
        unique=True,
        sqlite_where=pending_only(),
        postgresql_where=pending_only(),
    )


def _drop_request_indexes(table: str) -> None:
    op.drop_index(f'uq_{table}_one_pending', table_name=table)
    op.drop_index(f'ix_{table}_requested_at', table_name=table)
    op.drop_index(f'ix_{table}_status', table_name=table)
    op.drop_index(f'ix_{table}_account_id', table_name=table)


def upgrade() -> None:
    uuid_type = get_uuid_type()

    op.create_table(
        'withdrawal_requests',
        *_request_columns(uuid_type),
        sa.Column('payout_destination', sa.String(255), nullable=False),
        sa.Column('payout_amount', sa.Integer(), nullable=False),
        sa.Column('auto_risk_tags', sa.JSON(), nullable=False),
        sa.Column('risk_score', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('request_id'),
    )
    _create_request_indexes('withdrawal_requests')
    op.create_index('ix_withdrawal_requests_payout_destination', 'withdrawal_requests', ['payout_destination'])

    op.create_table(
        'topup_requests',
        *_request_columns(uuid_type),
        sa.Column('payment_method', sa.String(50), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint('request_id'),
    )
    _create_request_indexes('topup_requests')

    op.create_table(
        'notifications',
        sa.Column('notification_id', uuid_type, nullable=False),
        sa.Column('account_id', uuid_type, nullable=False),
        sa.Column('notification_type', sa.String(50), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.account_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('notification_id'),
    )
    op.create_index('ix_notifications_account_id', 'notifications', ['account_id'])
    op.create_index('ix_notifications_account_created', 'notifications', ['account_id', 'created_at'])

    op.create_table(
        'audit_logs',
        sa.Column('log_id', uuid_type, nullable=False),
        sa.Column('actor_id', sa.String(64), nullable=False),
        sa.Column('target_id', sa.String(64), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('log_id'),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_target_id', 'audit_logs', ['target_id'])
    op.create_index('ix_audit_logs_action_created', 'audit_logs', ['action', 'created_at'])

    op.create_table(
        'daily_rewards',
        sa.Column('reward_id', uuid_type, nullable=False),
        sa.Column('account_id', uuid_type, nullable=False),
        sa.Column('reward_date', sa.Date(), nullable=False),
        sa.Column('streak_count', sa.Integer(), nullable=False),
        sa.Column('reward_coins', sa.Integer(), nullable=False),
        sa.Column('ledger_entry_id', sa.Integer(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.account_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('reward_id'),
        sa.UniqueConstraint('account_id', 'reward_date', name='uq_daily_rewards_account_date'),
    )
    op.create_index('ix_daily_rewards_account_id', 'daily_rewards', ['account_id'])

    op.create_table(
        'system_config',
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('value_type', sa.String(20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by', sa.String(100), nullable=True),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade() -> None:
    op.drop_table('system_config')

    op.drop_index('ix_daily_rewards_account_id', table_name='daily_rewards')
    op.drop_table('daily_rewards')

    op.drop_index('ix_audit_logs_action_created', table_name='audit_logs')
    op.drop_index('ix_audit_logs_target_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_actor_id', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('ix_notifications_account_created', table_name='notifications')
    op.drop_index('ix_notifications_account_id', table_name='notifications')
    op.drop_table('notifications')

    _drop_request_indexes('topup_requests')
    op.drop_table('topup_requests')

    op.drop_index('ix_withdrawal_requests_payout_destination', table_name='withdrawal_requests')
    _drop_request_indexes('withdrawal_requests')
    op.drop_table('withdrawal_requests')

"""Tests for admin wallet tools, roles, audit trail and notifications."""

import uuid

import pytest
from sqlalchemy import update

from backend.models.account import Account
from backend.models.base import LedgerKind, Role
from backend.services.account_service import AccountService
from backend.services.audit_service import AuditAction, AuditService
from backend.services.notification_service import NotificationService, NotificationType
from backend.services.role_service import RoleService
from backend.services.wallet_service import WalletService
from backend.utils.exceptions import ForbiddenError, InsufficientBalanceError, NotFoundError, ValidationError


@pytest.fixture
def wallet(db_session, lock_client):
    return WalletService(db_session, lock_client=lock_client)


class TestAdjustBalance:

    @pytest.mark.asyncio
    async def test_manual_credit_is_bonus_by_default(self, wallet, account_factory, admin):
        account_id = (await account_factory()).account_id

        entry = await wallet.adjust_balance(admin.account_id, account_id, 50, "Tournament compensation")

        assert entry.kind == LedgerKind.ADMIN_ADJUSTMENT.value
        assert entry.is_withdrawable is False
        assert entry.created_by == str(admin.account_id)
        balance = await wallet.get_balance(account_id)
        assert balance.spendable == 50
        assert balance.withdrawable == 0

    @pytest.mark.asyncio
    async def test_withdrawable_credit(self, wallet, account_factory, admin):
        account_id = (await account_factory()).account_id

        await wallet.adjust_balance(admin.account_id, account_id, 50, "Missed prize", withdrawable=True)

        assert (await wallet.get_balance(account_id)).withdrawable == 50

    @pytest.mark.asyncio
    async def test_debit_is_guarded(self, wallet, account_factory, admin):
        account_id = (await account_factory(balance=20)).account_id
        admin_id = admin.account_id

        with pytest.raises(InsufficientBalanceError):
            await wallet.adjust_balance(admin_id, account_id, -30, "Chargeback")

        await wallet.adjust_balance(admin_id, account_id, -20, "Chargeback")
        balance = await wallet.get_balance(account_id)
        assert balance.spendable == 0
        assert balance.withdrawable == 0

    @pytest.mark.asyncio
    async def test_reason_required(self, wallet, account_factory, admin):
        account_id = (await account_factory()).account_id

        with pytest.raises(ValidationError):
            await wallet.adjust_balance(admin.account_id, account_id, 10, "  ")

    @pytest.mark.asyncio
    async def test_players_cannot_adjust(self, wallet, account_factory):
        account_id = (await account_factory()).account_id

        with pytest.raises(ForbiddenError):
            await wallet.adjust_balance(account_id, account_id, 1000, "Free coins")

        assert (await wallet.get_balance(account_id)).spendable == 0

    @pytest.mark.asyncio
    async def test_adjustment_is_audited_and_notified(self, db_session, wallet, account_factory, admin):
        account_id = (await account_factory()).account_id

        await wallet.adjust_balance(admin.account_id, account_id, 25, "Goodwill")

        logs = await AuditService(db_session).list_logs(action=AuditAction.BALANCE_ADJUSTED, target_id=account_id)
        assert len(logs) == 1
        assert logs[0].actor_id == str(admin.account_id)
        assert logs[0].details["amount"] == 25
        notifications = await NotificationService(db_session).list_for_account(account_id)
        assert [n.notification_type for n in notifications] == [NotificationType.BALANCE_ADJUSTED]

    @pytest.mark.asyncio
    async def test_reconcile_repairs_and_audits_drift(self, db_session, wallet, account_factory, admin):
        account_id = (await account_factory(balance=40)).account_id
        await db_session.execute(
            update(Account).where(Account.account_id == account_id).values(withdrawable_balance=0)
        )
        await db_session.commit()

        outcome = await wallet.reconcile(admin.account_id, account_id)

        assert outcome.drifted
        assert (await wallet.get_balance(account_id)).withdrawable == 40
        logs = await AuditService(db_session).list_logs(action=AuditAction.BALANCE_RECONCILED)
        assert len(logs) == 1


class TestRoles:

    @pytest.mark.asyncio
    async def test_superadmin_grants_admin(self, db_session, account_factory, superadmin):
        target_id = (await account_factory()).account_id
        roles = RoleService(db_session)

        await roles.grant_role(superadmin.account_id, target_id, Role.ADMIN)

        assert await roles.get_role(target_id) == Role.ADMIN
        assert await roles.is_admin(target_id)

    @pytest.mark.asyncio
    async def test_admin_cannot_grant_roles(self, db_session, account_factory, admin):
        target_id = (await account_factory()).account_id

        with pytest.raises(ForbiddenError):
            await RoleService(db_session).grant_role(admin.account_id, target_id, Role.ADMIN)

    @pytest.mark.asyncio
    async def test_unknown_role_and_target(self, db_session, superadmin):
        roles = RoleService(db_session)

        with pytest.raises(ValidationError):
            await roles.grant_role(superadmin.account_id, uuid.uuid4(), "owner")
        with pytest.raises(NotFoundError):
            await roles.grant_role(superadmin.account_id, uuid.uuid4(), Role.ADMIN)

    @pytest.mark.asyncio
    async def test_unknown_account_is_forbidden(self, db_session):
        with pytest.raises(ForbiddenError):
            await RoleService(db_session).require_role(uuid.uuid4(), Role.PLAYER)

    @pytest.mark.asyncio
    async def test_role_hierarchy(self, db_session, superadmin):
        roles = RoleService(db_session)

        assert await roles.require_role(superadmin.account_id, Role.ADMIN) == Role.SUPERADMIN


class TestAccounts:

    @pytest.mark.asyncio
    async def test_ensure_account_creates_players_once(self, db_session):
        service = AccountService(db_session)
        account_id = uuid.uuid4()

        first = await service.ensure_account(account_id, username="Sniper")
        second = await service.ensure_account(account_id, username="Renamed")

        assert first.account_id == second.account_id == account_id
        assert second.username == "Sniper"
        assert second.role == Role.PLAYER.value

    @pytest.mark.asyncio
    async def test_username_required(self, db_session):
        with pytest.raises(ValidationError):
            await AccountService(db_session).create_account("  ")


class TestNotifications:

    @pytest.mark.asyncio
    async def test_mark_read(self, db_session, account_factory):
        account_id = (await account_factory()).account_id
        other_id = (await account_factory()).account_id
        service = NotificationService(db_session)
        first = await service.create(account_id, NotificationType.MATCH_JOINED, "Joined")
        await service.create(account_id, NotificationType.PRIZE_AWARDED, "Won")
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await service.mark_read(other_id, first.notification_id)
        await service.mark_read(account_id, first.notification_id)

        unread = await service.list_for_account(account_id, unread_only=True)
        assert [n.notification_type for n in unread] == [NotificationType.PRIZE_AWARDED]
        assert await service.mark_all_read(account_id) == 1
        assert await service.list_for_account(account_id, unread_only=True) == []

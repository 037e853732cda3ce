"""Tests for BalanceService projections and reconciliation."""

import uuid

import pytest
from sqlalchemy import update

from backend.models.account import Account
from backend.models.base import LedgerKind, LedgerStatus
from backend.services.balance_service import Balance, BalanceService
from backend.services.ledger_service import LedgerService
from backend.utils.exceptions import NotFoundError


def test_withdrawable_is_clamped_to_available():
    balance = Balance.from_totals(uuid.uuid4(), spendable=150, withdrawable_raw=100, held=80)

    assert balance.available == 70
    assert balance.withdrawable == 70


def test_withdrawable_never_negative():
    balance = Balance.from_totals(uuid.uuid4(), spendable=30, withdrawable_raw=-20, held=0)

    assert balance.withdrawable == 0


def test_to_dict_includes_available():
    account_id = uuid.uuid4()
    data = Balance.from_totals(account_id, spendable=50, withdrawable_raw=50, held=20).to_dict()

    assert data == {"account_id": account_id, "spendable": 50, "withdrawable": 30, "held": 20, "available": 30}


class TestProjection:

    @pytest.mark.asyncio
    async def test_cached_totals_match_ledger_replay(self, db_session, account_factory):
        account = await account_factory(balance=100, bonus=50)
        ledger = LedgerService(db_session)
        await ledger.append(account.account_id, LedgerKind.ENTRY_FEE, -120)
        await ledger.append(account.account_id, LedgerKind.PRIZE, 40)
        pending = await ledger.append(
            account.account_id, LedgerKind.WITHDRAWAL, -30, status=LedgerStatus.PENDING
        )
        rejected = await ledger.append(
            account.account_id, LedgerKind.TOPUP, 999, status=LedgerStatus.PENDING
        )
        await ledger.transition(rejected.entry_id, LedgerStatus.REJECTED)

        service = BalanceService(db_session)
        cached = await service.balance(account.account_id)
        replayed = await service.replay_balance(account.account_id)

        assert cached == replayed
        assert cached.spendable == 70
        assert cached.held == -pending.amount
        assert cached.available == 40
        # 100 topup - 120 fee + 40 prize; bonus coins never count
        assert cached.withdrawable == 20

    @pytest.mark.asyncio
    async def test_bonus_spent_first_is_not_assumed(self, db_session, account_factory):
        """Spending reduces the withdrawable share even when bonus coins could cover it."""
        account = await account_factory(balance=100, bonus=50)
        await LedgerService(db_session).append(account.account_id, LedgerKind.ENTRY_FEE, -120)

        balance = await BalanceService(db_session).balance(account.account_id)

        assert balance.spendable == 30
        assert balance.withdrawable == 0

    @pytest.mark.asyncio
    async def test_can_afford(self, db_session, account_factory):
        account = await account_factory(balance=25)
        service = BalanceService(db_session)

        assert await service.can_afford(account.account_id, 25)
        assert not await service.can_afford(account.account_id, 26)

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session):
        with pytest.raises(NotFoundError):
            await BalanceService(db_session).balance(uuid.uuid4())


class TestReconcile:

    @pytest.mark.asyncio
    async def test_no_drift(self, db_session, account_factory):
        account = await account_factory(balance=100)

        outcome = await BalanceService(db_session).reconcile(account.account_id)

        assert not outcome.drifted
        assert outcome.cached == (100, 100, 0)

    @pytest.mark.asyncio
    async def test_repairs_drifted_totals(self, db_session, account_factory):
        account_id = (await account_factory(balance=100, bonus=10)).account_id
        await db_session.execute(
            update(Account)
            .where(Account.account_id == account_id)
            .values(spendable_balance=999, held_balance=5)
        )
        await db_session.commit()
        service = BalanceService(db_session)

        outcome = await service.reconcile(account_id)

        assert outcome.drifted
        assert outcome.cached == (999, 100, 5)
        assert outcome.replayed == (110, 100, 0)
        balance = await service.balance(account_id)
        assert balance.spendable == 110
        assert balance.held == 0
        assert not (await service.reconcile(account_id)).drifted

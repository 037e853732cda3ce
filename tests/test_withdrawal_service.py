"""
Tests for WithdrawalService and TopUpService approval workflows.
"""

import asyncio
import uuid
from datetime import datetime, UTC

import pytest

from backend.models.base import LedgerStatus, RequestStatus, RiskTag
from backend.models.ledger_entry import LedgerEntry
from backend.models.withdrawal_request import WithdrawalRequest
from backend.services.balance_service import BalanceService
from backend.services.system_config_service import SystemConfigService
from backend.services.topup_service import TopUpService
from backend.services.withdrawal_service import WithdrawalService
from backend.utils.exceptions import (
    DuplicatePendingError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    OutsideWindowError,
    ValidationError,
)

UPI = "arjun.k@okaxis"


@pytest.fixture
def withdrawals(db_session, lock_client):
    return WithdrawalService(db_session, lock_client=lock_client)


@pytest.fixture
def topups(db_session, lock_client):
    return TopUpService(db_session, lock_client=lock_client)


async def _balance(db_session, account_id):
    return await BalanceService(db_session).balance(account_id)


class TestWithdrawalRequest:

    @pytest.mark.asyncio
    async def test_request_places_hold(self, db_session, withdrawals, account_factory):
        account_id = (await account_factory(balance=300)).account_id

        request = await withdrawals.request_withdrawal(account_id, 100, UPI)

        assert request.status == RequestStatus.PENDING.value
        assert request.payout_amount == 100
        assert request.payout_destination == UPI
        balance = await _balance(db_session, account_id)
        assert balance.spendable == 300
        assert balance.held == 100
        assert balance.available == 200

        ledger_entry = await db_session.get(LedgerEntry, request.ledger_entry_id)
        assert ledger_entry.status == LedgerStatus.PENDING.value
        assert ledger_entry.amount == -100
        assert ledger_entry.related_request_id == request.request_id

    @pytest.mark.asyncio
    async def test_first_request_is_tagged_new(self, withdrawals, account_factory):
        account_id = (await account_factory(balance=300)).account_id

        request = await withdrawals.request_withdrawal(account_id, 100, UPI)

        assert request.auto_risk_tags == [RiskTag.NEW.value]
        assert request.risk_score == 10
        assert not request.is_suspicious

    @pytest.mark.asyncio
    async def test_one_pending_request_per_account(self, db_session, withdrawals, account_factory):
        account_id = (await account_factory(balance=500)).account_id
        await withdrawals.request_withdrawal(account_id, 100, UPI)

        with pytest.raises(DuplicatePendingError):
            await withdrawals.request_withdrawal(account_id, 100, UPI)

        assert (await _balance(db_session, account_id)).held == 100

    @pytest.mark.asyncio
    async def test_approve_completes_debit(self, db_session, withdrawals, account_factory, admin):
        account_id = (await account_factory(balance=300)).account_id
        request = await withdrawals.request_withdrawal(account_id, 100, UPI)

        approved = await withdrawals.approve(request.request_id, admin.account_id, note="Paid")

        assert approved.status == RequestStatus.APPROVED.value
        assert approved.processed_by == admin.account_id
        assert approved.processed_at is not None
        balance = await _balance(db_session, account_id)
        assert balance.spendable == 200
        assert balance.held == 0
        assert balance.withdrawable == 200

    @pytest.mark.asyncio
    async def test_request_is_resolved_once(self, db_session, withdrawals, account_factory, admin):
        account_id = (await account_factory(balance=300)).account_id
        admin_id = admin.account_id
        request_id = (await withdrawals.request_withdrawal(account_id, 100, UPI)).request_id
        await withdrawals.approve(request_id, admin_id)

        with pytest.raises(InvalidTransitionError):
            await withdrawals.approve(request_id, admin_id)
        with pytest.raises(InvalidTransitionError):
            await withdrawals.reject(request_id, admin_id, note="Too late")

        assert (await _balance(db_session, account_id)).spendable == 200

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, withdrawals, account_factory, admin):
        account_id = (await account_factory(balance=300)).account_id
        request = await withdrawals.request_withdrawal(account_id, 100, UPI)

        with pytest.raises(ValidationError):
            await withdrawals.reject(request.request_id, admin.account_id, note="   ")

    @pytest.mark.asyncio
    async def test_reject_releases_hold(self, db_session, withdrawals, account_factory, admin):
        account_id = (await account_factory(balance=300)).account_id
        request = await withdrawals.request_withdrawal(account_id, 100, UPI)

        rejected = await withdrawals.reject(request.request_id, admin.account_id, note="UPI name mismatch")

        assert rejected.status == RequestStatus.REJECTED.value
        assert rejected.admin_note == "UPI name mismatch"
        balance = await _balance(db_session, account_id)
        assert balance.spendable == 300
        assert balance.held == 0
        # A new request is allowed once the previous one is resolved
        await withdrawals.request_withdrawal(account_id, 100, UPI)

    @pytest.mark.asyncio
    async def test_players_cannot_resolve_requests(self, withdrawals, account_factory):
        account_id = (await account_factory(balance=300)).account_id
        other_id = (await account_factory()).account_id
        request = await withdrawals.request_withdrawal(account_id, 100, UPI)

        with pytest.raises(ForbiddenError):
            await withdrawals.approve(request.request_id, other_id)
        with pytest.raises(ForbiddenError):
            await withdrawals.approve(request.request_id, account_id)

    @pytest.mark.asyncio
    async def test_unknown_request(self, withdrawals, admin):
        with pytest.raises(NotFoundError):
            await withdrawals.approve(uuid.uuid4(), admin.account_id)


class TestWithdrawalRules:

    @pytest.mark.asyncio
    async def test_minimum_amount(self, withdrawals, account_factory):
        account_id = (await account_factory(balance=300)).account_id

        with pytest.raises(ValidationError):
            await withdrawals.request_withdrawal(account_id, 99, UPI)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("destination", ["", "   ", "not-a-upi", "@okaxis", "name@"])
    async def test_invalid_upi_id(self, withdrawals, account_factory, destination):
        account_id = (await account_factory(balance=300)).account_id

        with pytest.raises(ValidationError):
            await withdrawals.request_withdrawal(account_id, 100, destination)

    @pytest.mark.asyncio
    async def test_bonus_coins_cannot_be_withdrawn(self, db_session, withdrawals, account_factory):
        account_id = (await account_factory(balance=50, bonus=200)).account_id

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await withdrawals.request_withdrawal(account_id, 100, UPI)

        assert exc_info.value.shortfall == 50
        assert (await _balance(db_session, account_id)).held == 0

    @pytest.mark.asyncio
    async def test_window_closed(self, db_session, lock_client, account_factory):
        account_id = (await account_factory(balance=300)).account_id
        await SystemConfigService(db_session).set_config_value("withdrawal_window_enabled", True)
        # 20:00 UTC is 01:30 in India, outside 10:00-22:00
        service = WithdrawalService(
            db_session, lock_client=lock_client, clock=lambda: datetime(2025, 3, 1, 20, 0, tzinfo=UTC)
        )

        with pytest.raises(OutsideWindowError):
            await service.request_withdrawal(account_id, 100, UPI)

    @pytest.mark.asyncio
    async def test_window_open(self, db_session, lock_client, account_factory):
        account_id = (await account_factory(balance=300)).account_id
        await SystemConfigService(db_session).set_config_value("withdrawal_window_enabled", True)
        service = WithdrawalService(
            db_session, lock_client=lock_client, clock=lambda: datetime(2025, 3, 1, 8, 0, tzinfo=UTC)
        )

        request = await service.request_withdrawal(account_id, 100, UPI)

        assert request.status == RequestStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_window_timezone_follows_runtime_config(self, db_session, lock_client, account_factory):
        account_id = (await account_factory(balance=300)).account_id
        config = SystemConfigService(db_session)
        await config.set_config_value("withdrawal_window_enabled", True)
        await config.set_config_value("withdrawal_window_timezone", "UTC")
        # 20:00 UTC is inside 10:00-22:00 once the window is read in UTC
        service = WithdrawalService(
            db_session, lock_client=lock_client, clock=lambda: datetime(2025, 3, 1, 20, 0, tzinfo=UTC)
        )

        request = await service.request_withdrawal(account_id, 100, UPI)

        assert request.status == RequestStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_payout_tiers_for_regular_withdrawers(self, db_session, withdrawals, account_factory):
        account_id = (await account_factory(balance=300)).account_id
        assert await withdrawals.payout_amount(account_id, 100) == 100

        for _ in range(5):
            db_session.add(WithdrawalRequest(
                account_id=account_id,
                amount=100,
                status=RequestStatus.APPROVED.value,
                ledger_entry_id=0,
                payout_destination=UPI,
                payout_amount=100,
            ))
        await db_session.commit()

        assert await withdrawals.payout_amount(account_id, 100) == 95
        assert await withdrawals.payout_amount(account_id, 1000) == 960
        assert await withdrawals.payout_amount(account_id, 150) == 150

        request = await withdrawals.request_withdrawal(account_id, 250, UPI)
        assert request.payout_amount == 240


class TestHoldsAgainstSpending:

    @pytest.mark.asyncio
    async def test_withdrawal_and_join_race_for_same_coins(self, session_factory, lock_client, account_factory, admin):
        from backend.services.match_service import MatchService
        from backend.services.matchmaking_client import MatchmakingClient

        account_id = (await account_factory(balance=100)).account_id
        async with session_factory() as session:
            match = await MatchService(session, lock_client=lock_client, matchmaking=MatchmakingClient("")).create_match(
                admin.account_id, entry_fee=100, total_slots=4
            )
            match_id = match.match_id

        async def withdraw():
            async with session_factory() as session:
                return await WithdrawalService(session, lock_client=lock_client).request_withdrawal(
                    account_id, 100, UPI
                )

        async def join():
            async with session_factory() as session:
                service = MatchService(session, lock_client=lock_client, matchmaking=MatchmakingClient(""))
                return await service.join_match(match_id, account_id)

        outcomes = await asyncio.gather(withdraw(), join(), return_exceptions=True)

        assert sum(1 for o in outcomes if not isinstance(o, BaseException)) == 1
        assert sum(1 for o in outcomes if isinstance(o, InsufficientBalanceError)) == 1
        async with session_factory() as session:
            balance = await BalanceService(session).balance(account_id)
            assert balance.available == 0


class TestTopUp:

    @pytest.mark.asyncio
    async def test_pending_topup_does_not_count(self, db_session, topups, account_factory):
        account_id = (await account_factory()).account_id

        request = await topups.request_topup(account_id, 500, "UPI", payment_reference="TXN123")

        assert request.payment_method == "upi"
        assert request.payment_reference == "TXN123"
        balance = await _balance(db_session, account_id)
        assert balance.spendable == 0
        assert balance.held == 0

    @pytest.mark.asyncio
    async def test_approved_topup_is_withdrawable(self, db_session, topups, account_factory, admin):
        account_id = (await account_factory()).account_id
        request = await topups.request_topup(account_id, 500, "gpay")

        await topups.approve(request.request_id, admin.account_id)

        balance = await _balance(db_session, account_id)
        assert balance.spendable == 500
        assert balance.withdrawable == 500

    @pytest.mark.asyncio
    async def test_rejected_topup_never_counts(self, db_session, topups, account_factory, admin):
        account_id = (await account_factory()).account_id
        request = await topups.request_topup(account_id, 500, "paytm")

        await topups.reject(request.request_id, admin.account_id, note="Payment not received")

        assert (await _balance(db_session, account_id)).spendable == 0

    @pytest.mark.asyncio
    async def test_topup_limits_and_method(self, topups, account_factory):
        account_id = (await account_factory()).account_id

        with pytest.raises(ValidationError):
            await topups.request_topup(account_id, 5, "upi")
        with pytest.raises(ValidationError):
            await topups.request_topup(account_id, 200000, "upi")
        with pytest.raises(ValidationError):
            await topups.request_topup(account_id, 100, "cash")
        with pytest.raises(ValidationError):
            await topups.request_topup(account_id, 0, "upi")

    @pytest.mark.asyncio
    async def test_one_pending_topup(self, topups, account_factory):
        account_id = (await account_factory()).account_id
        await topups.request_topup(account_id, 100, "upi")

        with pytest.raises(DuplicatePendingError):
            await topups.request_topup(account_id, 200, "upi")

    @pytest.mark.asyncio
    async def test_pending_topup_and_withdrawal_are_independent(
        self, db_session, topups, withdrawals, account_factory
    ):
        account_id = (await account_factory(balance=300)).account_id

        await topups.request_topup(account_id, 100, "upi")
        await withdrawals.request_withdrawal(account_id, 100, UPI)

        balance = await _balance(db_session, account_id)
        assert balance.spendable == 300
        assert balance.held == 100

"""Tests for advisory withdrawal risk tags."""

from datetime import datetime, timedelta, UTC

import pytest

from backend.models.base import RequestStatus, RiskTag
from backend.models.withdrawal_request import WithdrawalRequest
from backend.services.risk_service import MAX_RISK_SCORE, RiskService


async def _add_withdrawals(db_session, account_id, count, destination="someone@ybl", requested_at=None):
    for _ in range(count):
        request = WithdrawalRequest(
            account_id=account_id,
            amount=100,
            status=RequestStatus.APPROVED.value,
            ledger_entry_id=0,
            payout_destination=destination,
            payout_amount=100,
        )
        if requested_at is not None:
            request.requested_at = requested_at
        db_session.add(request)
    await db_session.commit()


class TestRiskService:

    @pytest.mark.asyncio
    async def test_first_withdrawal_is_new(self, db_session, account_factory):
        account = await account_factory()

        assessment = await RiskService(db_session).assess(account.account_id, 100, "me@okicici", 1000)

        assert assessment.tags == [RiskTag.NEW]
        assert assessment.score == 10

    @pytest.mark.asyncio
    async def test_history_clears_new(self, db_session, account_factory):
        account = await account_factory()
        await _add_withdrawals(db_session, account.account_id, 1)

        assessment = await RiskService(db_session).assess(account.account_id, 100, "me@okicici", 1000)

        assert assessment.tags == []
        assert assessment.score == 0

    @pytest.mark.asyncio
    async def test_frequent_within_window(self, db_session, account_factory):
        account = await account_factory()
        await _add_withdrawals(db_session, account.account_id, 3)

        assessment = await RiskService(db_session).assess(account.account_id, 100, "me@okicici", 1000)

        assert RiskTag.FREQUENT in assessment.tags

    @pytest.mark.asyncio
    async def test_old_requests_do_not_count_as_frequent(self, db_session, account_factory):
        account = await account_factory()
        await _add_withdrawals(
            db_session, account.account_id, 3, requested_at=datetime.now(UTC) - timedelta(days=30)
        )

        assessment = await RiskService(db_session).assess(account.account_id, 100, "me@okicici", 1000)

        assert RiskTag.FREQUENT not in assessment.tags

    @pytest.mark.asyncio
    async def test_destination_shared_with_another_account(self, db_session, account_factory):
        account = await account_factory()
        other = await account_factory()
        await _add_withdrawals(db_session, other.account_id, 1, destination="Shared@YBL")

        assessment = await RiskService(db_session).assess(account.account_id, 100, " shared@ybl ", 1000)

        assert RiskTag.DUPLICATE_DESTINATION in assessment.tags

    @pytest.mark.asyncio
    async def test_own_destination_is_not_duplicate(self, db_session, account_factory):
        account = await account_factory()
        await _add_withdrawals(db_session, account.account_id, 1, destination="me@okicici")

        assessment = await RiskService(db_session).assess(account.account_id, 100, "me@okicici", 1000)

        assert RiskTag.DUPLICATE_DESTINATION not in assessment.tags

    @pytest.mark.asyncio
    async def test_high_ratio_of_balance(self, db_session, account_factory):
        account = await account_factory()
        service = RiskService(db_session)

        assert RiskTag.HIGH_RATIO in (await service.assess(account.account_id, 900, "me@okicici", 1000)).tags
        assert RiskTag.HIGH_RATIO not in (await service.assess(account.account_id, 800, "me@okicici", 1000)).tags

    @pytest.mark.asyncio
    async def test_high_amounts(self, db_session, account_factory):
        account = await account_factory()
        service = RiskService(db_session)

        high = await service.assess(account.account_id, 20000, "me@okicici", 100000)
        very_high = await service.assess(account.account_id, 60000, "me@okicici", 100000)

        assert high.tags == [RiskTag.NEW, RiskTag.HIGH_AMOUNT]
        assert high.score == 35
        assert very_high.score == 35 + 15

    @pytest.mark.asyncio
    async def test_score_is_capped(self, db_session, account_factory):
        account = await account_factory()
        other = await account_factory()
        await _add_withdrawals(db_session, account.account_id, 3, destination="me@okicici")
        await _add_withdrawals(db_session, other.account_id, 1, destination="me@okicici")

        assessment = await RiskService(db_session).assess(account.account_id, 60000, "me@okicici", 60000)

        assert set(assessment.tags) == {
            RiskTag.FREQUENT,
            RiskTag.HIGH_AMOUNT,
            RiskTag.DUPLICATE_DESTINATION,
            RiskTag.HIGH_RATIO,
        }
        assert assessment.score == MAX_RISK_SCORE

    @pytest.mark.asyncio
    async def test_suspicious_threshold(self, db_session):
        service = RiskService(db_session)

        assert await service.is_suspicious(71)
        assert not await service.is_suspicious(70)

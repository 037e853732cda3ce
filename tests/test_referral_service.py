"""
Tests for ReferralService - codes, referrals and the one-time bonus on first top-up.
"""

import asyncio

import pytest
from sqlalchemy import select

from backend.models.base import LedgerKind, ReferralStatus
from backend.models.ledger_entry import LedgerEntry
from backend.models.notification import Notification
from backend.services.balance_service import BalanceService
from backend.services.notification_service import NotificationType
from backend.services.referral_service import CODE_ALPHABET, CODE_LENGTH, ReferralService
from backend.services.system_config_service import SystemConfigService
from backend.services.topup_service import TopUpService
from backend.utils.exceptions import AlreadyClaimedError, ValidationError


@pytest.fixture
def referrals(db_session, lock_client):
    return ReferralService(db_session, lock_client=lock_client)


@pytest.fixture
def topups(db_session, lock_client):
    return TopUpService(db_session, lock_client=lock_client)


@pytest.fixture
async def referred_pair(referrals, account_factory):
    """(referrer_id, referred_id) with a pending referral between them."""
    referrer_id = (await account_factory()).account_id
    referred_id = (await account_factory()).account_id
    code = await referrals.get_code(referrer_id)
    await referrals.apply_code(referred_id, code)
    return referrer_id, referred_id


async def _balance(db_session, account_id):
    return await BalanceService(db_session).balance(account_id)


async def _bonus_amounts(db_session, account_id):
    result = await db_session.execute(
        select(LedgerEntry.amount).where(
            LedgerEntry.account_id == account_id, LedgerEntry.kind == LedgerKind.BONUS.value
        )
    )
    return list(result.scalars().all())


async def _approve_topup(topups, account_id, admin_id, amount=500):
    request = await topups.request_topup(account_id, amount, "upi")
    return await topups.approve(request.request_id, admin_id)


class TestCodes:

    @pytest.mark.asyncio
    async def test_code_is_issued_once(self, referrals, account_factory):
        account_id = (await account_factory()).account_id

        code = await referrals.get_code(account_id)

        assert len(code) == CODE_LENGTH
        assert set(code) <= set(CODE_ALPHABET)
        assert await referrals.get_code(account_id) == code

    @pytest.mark.asyncio
    async def test_codes_differ_between_accounts(self, referrals, account_factory):
        first = await referrals.get_code((await account_factory()).account_id)
        second = await referrals.get_code((await account_factory()).account_id)

        assert first != second


class TestApplyCode:

    @pytest.mark.asyncio
    async def test_referral_starts_pending(self, referrals, referred_pair):
        referrer_id, referred_id = referred_pair

        referral = await referrals.get_referral_for(referred_id)

        assert referral.referrer_id == referrer_id
        assert referral.status == ReferralStatus.PENDING.value
        assert referral.bonus_granted is False
        assert (referral.referrer_reward, referral.referred_reward) == (25, 25)

    @pytest.mark.asyncio
    async def test_code_is_case_and_space_insensitive(self, referrals, account_factory):
        referrer_id = (await account_factory()).account_id
        referred_id = (await account_factory()).account_id
        code = await referrals.get_code(referrer_id)

        referral = await referrals.apply_code(referred_id, f"  {code.lower()} ")

        assert referral.referrer_id == referrer_id

    @pytest.mark.asyncio
    async def test_rejected_codes(self, referrals, account_factory):
        account_id = (await account_factory()).account_id
        own_code = await referrals.get_code(account_id)

        with pytest.raises(ValidationError):
            await referrals.apply_code(account_id, "")
        with pytest.raises(ValidationError):
            await referrals.apply_code(account_id, "NOSUCHCD")
        with pytest.raises(ValidationError):
            await referrals.apply_code(account_id, own_code)

    @pytest.mark.asyncio
    async def test_one_referral_per_account(self, referrals, referred_pair, account_factory):
        _, referred_id = referred_pair
        other_code = await referrals.get_code((await account_factory()).account_id)

        with pytest.raises(AlreadyClaimedError):
            await referrals.apply_code(referred_id, other_code)

    @pytest.mark.asyncio
    async def test_referred_account_cannot_refer_back(self, referrals, referred_pair):
        referrer_id, referred_id = referred_pair
        code = await referrals.get_code(referred_id)

        with pytest.raises(ValidationError):
            await referrals.apply_code(referrer_id, code)

    @pytest.mark.asyncio
    async def test_code_must_come_before_first_topup(self, referrals, topups, account_factory, admin):
        referrer_code = await referrals.get_code((await account_factory()).account_id)
        account_id = (await account_factory()).account_id
        await _approve_topup(topups, account_id, admin.account_id)

        with pytest.raises(ValidationError):
            await referrals.apply_code(account_id, referrer_code)

    @pytest.mark.asyncio
    async def test_rewards_follow_runtime_config(self, db_session, referrals, account_factory):
        await SystemConfigService(db_session).set_config_value("referral_referrer_reward", 40)
        referrer_id = (await account_factory()).account_id
        referred_id = (await account_factory()).account_id

        referral = await referrals.apply_code(referred_id, await referrals.get_code(referrer_id))

        assert (referral.referrer_reward, referral.referred_reward) == (40, 25)


class TestBonus:

    @pytest.mark.asyncio
    async def test_first_approved_topup_pays_both_sides(self, db_session, referrals, topups, referred_pair, admin):
        referrer_id, referred_id = referred_pair

        await _approve_topup(topups, referred_id, admin.account_id)

        referrer = await _balance(db_session, referrer_id)
        referred = await _balance(db_session, referred_id)
        assert (referrer.spendable, referrer.withdrawable) == (25, 0)
        assert (referred.spendable, referred.withdrawable) == (525, 500)
        referral = await referrals.get_referral_for(referred_id)
        assert referral.bonus_granted is True
        assert referral.status == ReferralStatus.COMPLETED.value
        assert referral.completed_at is not None

    @pytest.mark.asyncio
    async def test_bonus_is_granted_once(self, db_session, topups, referred_pair, admin):
        referrer_id, referred_id = referred_pair

        await _approve_topup(topups, referred_id, admin.account_id)
        await _approve_topup(topups, referred_id, admin.account_id, amount=200)

        assert await _bonus_amounts(db_session, referrer_id) == [25]
        assert await _bonus_amounts(db_session, referred_id) == [25]
        assert (await _balance(db_session, referred_id)).spendable == 725

    @pytest.mark.asyncio
    async def test_rejected_topup_grants_nothing(self, db_session, referrals, topups, referred_pair, admin):
        referrer_id, referred_id = referred_pair
        request = await topups.request_topup(referred_id, 500, "upi")

        await topups.reject(request.request_id, admin.account_id, note="Payment not received")

        assert await _bonus_amounts(db_session, referrer_id) == []
        assert (await referrals.get_referral_for(referred_id)).bonus_granted is False

    @pytest.mark.asyncio
    async def test_topup_without_referral_is_unchanged(self, db_session, topups, account_factory, admin):
        account_id = (await account_factory()).account_id

        await _approve_topup(topups, account_id, admin.account_id)

        assert await _bonus_amounts(db_session, account_id) == []
        assert (await _balance(db_session, account_id)).spendable == 500

    @pytest.mark.asyncio
    async def test_both_sides_are_notified(self, db_session, topups, referred_pair, admin):
        referrer_id, referred_id = referred_pair

        await _approve_topup(topups, referred_id, admin.account_id)

        result = await db_session.execute(
            select(Notification.account_id).where(
                Notification.notification_type == NotificationType.REFERRAL_BONUS
            )
        )
        assert sorted(map(str, result.scalars().all())) == sorted([str(referrer_id), str(referred_id)])

    @pytest.mark.asyncio
    async def test_concurrent_grants_pay_once(self, session_factory, lock_client, referred_pair):
        referrer_id, referred_id = referred_pair

        async def grant():
            async with session_factory() as session:
                return await ReferralService(session, lock_client=lock_client).grant_bonus(referred_id)

        outcomes = await asyncio.gather(grant(), grant())

        assert sum(1 for o in outcomes if o is not None) == 1
        async with session_factory() as session:
            assert await _bonus_amounts(session, referrer_id) == [25]
            assert await _bonus_amounts(session, referred_id) == [25]


class TestStats:

    @pytest.mark.asyncio
    async def test_stats_count_referrals_and_coins(self, referrals, topups, account_factory, admin):
        referrer_id = (await account_factory()).account_id
        code = await referrals.get_code(referrer_id)
        first = (await account_factory()).account_id
        second = (await account_factory()).account_id
        await referrals.apply_code(first, code)
        await referrals.apply_code(second, code)
        await _approve_topup(topups, first, admin.account_id)

        stats = await referrals.get_stats(referrer_id)

        assert stats == {
            "referral_code": code,
            "total_referrals": 2,
            "completed_referrals": 1,
            "pending_referrals": 1,
            "coins_earned": 25,
        }

    @pytest.mark.asyncio
    async def test_stats_for_new_account(self, referrals, account_factory):
        account_id = (await account_factory()).account_id

        stats = await referrals.get_stats(account_id)

        assert stats["total_referrals"] == 0
        assert stats["coins_earned"] == 0
        assert stats["referral_code"]

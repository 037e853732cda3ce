"""Tests for daily login rewards."""

from datetime import datetime, timedelta, UTC

import pytest

from backend.services.balance_service import BalanceService
from backend.services.daily_reward_service import DailyRewardService, streak_reward
from backend.services.system_config_service import SystemConfigService
from backend.utils.exceptions import AlreadyClaimedError

STREAK = [10, 15, 20, 25, 30, 40, 50]


@pytest.mark.parametrize(
    "day, expected",
    [(1, 10), (2, 15), (7, 50), (8, 10), (13, 10), (14, 15), (21, 20)],
)
def test_streak_reward(day, expected):
    assert streak_reward(day, STREAK, base=10, weekly_step=5) == expected


class Clock:
    """Settable clock for multi-day scenarios."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 1) -> None:
        self.now += timedelta(days=days)


@pytest.fixture
def clock():
    return Clock(datetime(2025, 6, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def rewards(db_session, lock_client, clock):
    return DailyRewardService(db_session, lock_client=lock_client, clock=clock)


class TestDailyRewards:

    @pytest.mark.asyncio
    async def test_first_claim(self, db_session, rewards, account_factory):
        account_id = (await account_factory()).account_id

        reward = await rewards.claim(account_id)

        assert reward.streak_count == 1
        assert reward.reward_coins == 10
        assert reward.ledger_entry_id is not None
        balance = await BalanceService(db_session).balance(account_id)
        assert balance.spendable == 10
        assert balance.withdrawable == 0

    @pytest.mark.asyncio
    async def test_one_claim_per_day(self, rewards, account_factory):
        account_id = (await account_factory()).account_id
        await rewards.claim(account_id)

        with pytest.raises(AlreadyClaimedError):
            await rewards.claim(account_id)

    @pytest.mark.asyncio
    async def test_consecutive_days_build_streak(self, rewards, clock, account_factory):
        account_id = (await account_factory()).account_id

        coins = []
        for _ in range(3):
            coins.append((await rewards.claim(account_id)).reward_coins)
            clock.advance()

        assert coins == [10, 15, 20]

    @pytest.mark.asyncio
    async def test_missed_day_resets_streak(self, rewards, clock, account_factory):
        account_id = (await account_factory()).account_id
        await rewards.claim(account_id)
        clock.advance()
        await rewards.claim(account_id)

        clock.advance(days=2)
        reward = await rewards.claim(account_id)

        assert reward.streak_count == 1
        assert reward.reward_coins == 10

    @pytest.mark.asyncio
    async def test_status(self, rewards, clock, account_factory):
        account_id = (await account_factory()).account_id

        status = await rewards.get_status(account_id)
        assert status["available"] is True
        assert status["current_streak"] == 0
        assert status["next_reward"] == 10
        assert status["last_claimed"] is None

        await rewards.claim(account_id)
        status = await rewards.get_status(account_id)
        assert status["available"] is False
        assert status["current_streak"] == 1
        assert status["next_reward"] == 15

        clock.advance()
        status = await rewards.get_status(account_id)
        assert status["available"] is True
        assert status["current_streak"] == 1
        assert status["next_reward"] == 15

    @pytest.mark.asyncio
    async def test_base_reward_is_configurable(self, db_session, rewards, clock, account_factory):
        account_id = (await account_factory()).account_id
        await SystemConfigService(db_session).set_config_value("daily_reward_base", 12)

        for _ in range(8):
            reward = await rewards.claim(account_id)
            clock.advance()

        assert reward.streak_count == 8
        assert reward.reward_coins == 12

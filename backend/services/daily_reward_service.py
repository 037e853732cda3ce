"""Daily login rewards with a consecutive-day streak."""

from datetime import UTC, date, datetime, timedelta
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.base import LedgerKind
from backend.models.daily_reward import DailyReward
from backend.services.ledger_service import LedgerService, account_lock_name
from backend.services.notification_service import NotificationService
from backend.services.system_config_service import SystemConfigService
from backend.utils.exceptions import AlreadyClaimedError
from backend.utils.lock_client import LockClient, get_lock_client

logger = logging.getLogger(__name__)


def streak_reward(day: int, streak: list[int], base: int, weekly_step: int) -> int:
    """Coins for the ``day``-th consecutive claim (1-based)."""
    if day <= len(streak):
        return streak[day - 1]
    return base + ((day - len(streak)) // 7) * weekly_step


class DailyRewardService:
    """Service for checking and claiming daily rewards.

    Rewards are bonus coins: spendable on match entries but never part of
    the withdrawable balance.
    """

    def __init__(self, db: AsyncSession, lock_client: LockClient | None = None, clock=None):
        self.db = db
        self.settings = get_settings()
        self.lock_client = lock_client or get_lock_client()
        self.config = SystemConfigService(db)
        self.ledger = LedgerService(db, lock_client=self.lock_client)
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _last_claim(self, account_id: UUID) -> DailyReward | None:
        result = await self.db.execute(
            select(DailyReward)
            .where(DailyReward.account_id == account_id)
            .order_by(DailyReward.reward_date.desc())
            .limit(1)
        )
        return result.scalars().first()

    def _next_streak(self, last: DailyReward | None, today: date) -> int:
        if last and last.reward_date == today - timedelta(days=1):
            return last.streak_count + 1
        return 1

    async def get_status(self, account_id: UUID) -> dict:
        today = self._clock().date()
        last = await self._last_claim(account_id)
        claimed_today = bool(last and last.reward_date == today)
        streak = last.streak_count if claimed_today else self._next_streak(last, today)
        base = await self.config.get_config_value("daily_reward_base")
        next_day = streak + 1 if claimed_today else streak
        return {
            "available": not claimed_today,
            "current_streak": streak if claimed_today else streak - 1,
            "next_reward": streak_reward(
                next_day, self.settings.daily_reward_streak, base, self.settings.daily_reward_weekly_step
            ),
            "last_claimed": last.reward_date if last else None,
        }

    async def claim(self, account_id: UUID) -> DailyReward:
        """
        Claim today's reward (UTC day). A missed day restarts the streak.

        Raises:
            AlreadyClaimedError: Reward already claimed today
        """
        today = self._clock().date()
        base = await self.config.get_config_value("daily_reward_base")

        async with self.lock_client.lock(account_lock_name(account_id), timeout=self.settings.lock_timeout_seconds):
            last = await self._last_claim(account_id)
            if last and last.reward_date == today:
                raise AlreadyClaimedError("Daily reward already claimed today")

            streak = self._next_streak(last, today)
            coins = streak_reward(streak, self.settings.daily_reward_streak, base, self.settings.daily_reward_weekly_step)

            try:
                reward = DailyReward(account_id=account_id, reward_date=today, streak_count=streak, reward_coins=coins)
                self.db.add(reward)
                if coins > 0:
                    entry = await self.ledger.append(
                        account_id,
                        LedgerKind.BONUS,
                        coins,
                        is_withdrawable=False,
                        notes=f"Daily reward, day {streak}",
                        auto_commit=False,
                        skip_lock=True,
                    )
                    reward.ledger_entry_id = entry.entry_id
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                raise AlreadyClaimedError("Daily reward already claimed today")

        logger.info(f"Daily reward claimed by {account_id}: day {streak}, {coins} coins")
        NotificationService(self.db).push(account_id)
        return reward

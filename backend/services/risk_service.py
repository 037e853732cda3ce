"""Advisory risk tagging for withdrawal requests."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from uuid import UUID
import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.base import RiskTag
from backend.models.withdrawal_request import WithdrawalRequest
from backend.services.system_config_service import SystemConfigService

logger = logging.getLogger(__name__)

# Score contributed by each tag
TAG_SCORES = {
    RiskTag.NEW: 10,
    RiskTag.FREQUENT: 30,
    RiskTag.HIGH_AMOUNT: 25,
    RiskTag.DUPLICATE_DESTINATION: 40,
    RiskTag.HIGH_RATIO: 20,
}
VERY_HIGH_AMOUNT_SCORE = 15
MAX_RISK_SCORE = 100


@dataclass
class RiskAssessment:
    tags: list[RiskTag] = field(default_factory=list)
    score: int = 0

    def add(self, tag: RiskTag) -> None:
        self.tags.append(tag)
        self.score += TAG_SCORES[tag]

    @property
    def tag_values(self) -> list[str]:
        return [tag.value for tag in self.tags]


class RiskService:
    """Computes risk tags from an account's withdrawal history.

    Tags only inform the admin reviewing the request; they never block it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()
        self.config = SystemConfigService(db)

    async def assess(
        self,
        account_id: UUID,
        amount: int,
        payout_destination: str,
        spendable_balance: int,
        now: datetime | None = None,
    ) -> RiskAssessment:
        now = now or datetime.now(UTC)
        assessment = RiskAssessment()

        previous = await self.db.scalar(
            select(func.count()).select_from(WithdrawalRequest).where(WithdrawalRequest.account_id == account_id)
        )
        if not previous:
            assessment.add(RiskTag.NEW)

        window_start = now - timedelta(days=self.settings.risk_frequency_window_days)
        recent = await self.db.scalar(
            select(func.count())
            .select_from(WithdrawalRequest)
            .where(WithdrawalRequest.account_id == account_id, WithdrawalRequest.requested_at >= window_start)
        )
        # The request being assessed counts towards the window
        if (recent or 0) + 1 > self.settings.risk_frequency_limit:
            assessment.add(RiskTag.FREQUENT)

        high_amount = await self.config.get_config_value("risk_high_amount_threshold")
        if amount > high_amount:
            assessment.add(RiskTag.HIGH_AMOUNT)

        shared = await self.db.scalar(
            select(func.count())
            .select_from(WithdrawalRequest)
            .where(
                func.lower(WithdrawalRequest.payout_destination) == payout_destination.strip().lower(),
                WithdrawalRequest.account_id != account_id,
            )
        )
        if shared:
            assessment.add(RiskTag.DUPLICATE_DESTINATION)

        if spendable_balance > 0 and amount > spendable_balance * self.settings.risk_high_ratio:
            assessment.add(RiskTag.HIGH_RATIO)

        very_high_amount = await self.config.get_config_value("risk_very_high_amount_threshold")
        if amount > very_high_amount:
            assessment.score += VERY_HIGH_AMOUNT_SCORE

        assessment.score = min(assessment.score, MAX_RISK_SCORE)
        if assessment.tags:
            logger.info(f"Withdrawal risk for {account_id}: tags={assessment.tag_values}, score={assessment.score}")
        return assessment

    async def is_suspicious(self, score: int) -> bool:
        threshold = await self.config.get_config_value("risk_suspicious_score")
        return score > threshold

"""Referral codes and the one-time referral bonus."""
import logging
import secrets
from datetime import datetime, UTC
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.account import Account
from backend.models.base import LedgerKind, ReferralStatus, RequestStatus
from backend.models.referral import Referral
from backend.models.topup_request import TopUpRequest
from backend.services.account_service import AccountService
from backend.services.ledger_service import LedgerService
from backend.services.notification_service import NotificationService, NotificationType
from backend.services.realtime_service import RealtimeService, get_realtime_service
from backend.services.system_config_service import SystemConfigService
from backend.utils.exceptions import (
    AlreadyClaimedError,
    BusinessRuleError,
    TransientBackendError,
    ValidationError,
)
from backend.utils.lock_client import LockClient, get_lock_client

logger = logging.getLogger(__name__)

# Unambiguous characters only (no 0/O, 1/I)
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8


def generate_referral_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class ReferralService:
    """Service for referral codes, referrals and the referral bonus.

    A referral stays pending until the referred account's first top-up is
    approved. At that point both accounts receive bonus coins (spendable,
    never withdrawable), once per referral.
    """

    CODE_ATTEMPTS = 5

    def __init__(
        self,
        db: AsyncSession,
        lock_client: LockClient | None = None,
        realtime: RealtimeService | None = None,
    ):
        self.db = db
        self.lock_client = lock_client or get_lock_client()
        self.accounts = AccountService(db)
        self.config = SystemConfigService(db)
        self.ledger = LedgerService(db, lock_client=self.lock_client)
        self.notifications = NotificationService(db, realtime=realtime or get_realtime_service())

    async def get_code(self, account_id: UUID) -> str:
        """Return the account's referral code, issuing one on first use."""
        account = await self.accounts.require_account(account_id)
        if account.referral_code:
            return account.referral_code

        for attempt in range(1, self.CODE_ATTEMPTS + 1):
            code = generate_referral_code()
            try:
                await self.db.execute(
                    update(Account)
                    .where(Account.account_id == account_id, Account.referral_code.is_(None))
                    .values(referral_code=code)
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(f"Referral code collision for {account_id} (attempt {attempt})")
                continue
            # A concurrent request may have issued the code first; the row wins
            account = await self.db.get(Account, account_id, populate_existing=True)
            logger.info(f"Referral code issued to {account_id}")
            return account.referral_code

        raise TransientBackendError("Could not issue a referral code, please try again")

    async def get_referral_for(self, referred_id: UUID) -> Optional[Referral]:
        result = await self.db.execute(
            select(Referral)
            .where(Referral.referred_id == referred_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def apply_code(self, account_id: UUID, code: str) -> Referral:
        """
        Record that ``account_id`` was referred by the owner of ``code``.

        Raises:
            ValidationError: Unknown or own code, or the account already topped up
            AlreadyClaimedError: The account has already used a referral code
        """
        code = (code or "").strip().upper()
        if not code:
            raise ValidationError("Please enter a referral code")

        referrer_id = await self.db.scalar(select(Account.account_id).where(Account.referral_code == code))
        if referrer_id is None:
            raise ValidationError("Invalid referral code")
        if referrer_id == account_id:
            raise ValidationError("You cannot use your own referral code")
        if await self.get_referral_for(account_id):
            raise AlreadyClaimedError("You have already used a referral code")
        referrer_referral = await self.get_referral_for(referrer_id)
        if referrer_referral and referrer_referral.referrer_id == account_id:
            raise ValidationError("You cannot use the code of someone you referred")
        if await self._has_approved_topup(account_id):
            raise ValidationError("Referral codes can only be used before your first top-up")

        referral = Referral(
            referrer_id=referrer_id,
            referred_id=account_id,
            status=ReferralStatus.PENDING.value,
            referrer_reward=await self.config.get_config_value("referral_referrer_reward"),
            referred_reward=await self.config.get_config_value("referral_referred_reward"),
            bonus_granted=False,
        )
        self.db.add(referral)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AlreadyClaimedError("You have already used a referral code")
        await self.db.refresh(referral)

        logger.info(f"Account {account_id} referred by {referrer_id} (referral {referral.referral_id})")
        return referral

    async def grant_bonus(self, referred_id: UUID) -> Optional[Referral]:
        """
        Credit both sides of the referral, at most once.

        Called after a top-up of ``referred_id`` is approved. Returns the
        completed referral, or None when there is nothing (left) to grant.
        """
        referral = await self.get_referral_for(referred_id)
        if referral is None or referral.bonus_granted:
            return None

        try:
            result = await self.db.execute(
                update(Referral)
                .where(Referral.referral_id == referral.referral_id, Referral.bonus_granted == False)  # noqa: E712
                .values(
                    bonus_granted=True,
                    status=ReferralStatus.COMPLETED.value,
                    completed_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Granted by a concurrent approval; nothing was written
                await self.db.commit()
                return None

            for account_id, coins, note in (
                (referral.referrer_id, referral.referrer_reward, "Referral bonus - friend topped up"),
                (referral.referred_id, referral.referred_reward, "Referral bonus - used referral code"),
            ):
                if coins <= 0:
                    continue
                # Credits only: no balance check to serialise on
                await self.ledger.append(
                    account_id,
                    LedgerKind.BONUS,
                    coins,
                    is_withdrawable=False,
                    notes=note,
                    auto_commit=False,
                    skip_lock=True,
                )
                await self.notifications.create(
                    account_id,
                    NotificationType.REFERRAL_BONUS,
                    f"You received {coins} referral bonus coins",
                    data={"referral_id": str(referral.referral_id), "amount": coins},
                )
            await self.db.commit()
        except BusinessRuleError:
            await self.db.rollback()
            raise

        referral = await self.get_referral_for(referred_id)
        logger.info(
            f"Referral bonus granted: referrer={referral.referrer_id} (+{referral.referrer_reward}), "
            f"referred={referral.referred_id} (+{referral.referred_reward})"
        )
        self.notifications.push(referral.referrer_id)
        self.notifications.push(referral.referred_id)
        return referral

    async def get_stats(self, account_id: UUID) -> dict:
        """Referral code and counts for the referring account."""
        code = await self.get_code(account_id)
        result = await self.db.execute(
            select(
                func.count(Referral.referral_id),
                func.count(Referral.referral_id).filter(Referral.status == ReferralStatus.COMPLETED.value),
                func.coalesce(
                    func.sum(Referral.referrer_reward).filter(Referral.bonus_granted == True),  # noqa: E712
                    0,
                ),
            ).where(Referral.referrer_id == account_id)
        )
        total, completed, coins_earned = result.one()
        return {
            "referral_code": code,
            "total_referrals": total,
            "completed_referrals": completed,
            "pending_referrals": total - completed,
            "coins_earned": coins_earned,
        }

    async def _has_approved_topup(self, account_id: UUID) -> bool:
        found = await self.db.scalar(
            select(TopUpRequest.request_id)
            .where(TopUpRequest.account_id == account_id, TopUpRequest.status == RequestStatus.APPROVED.value)
            .limit(1)
        )
        return found is not None

"""Balance projection from the ledger."""
from dataclasses import dataclass, asdict
from uuid import UUID
import logging

from sqlalchemy import select, func, case, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.account import Account
from backend.models.base import LedgerStatus
from backend.models.ledger_entry import LedgerEntry
from backend.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Balance:
    """Projected balance of one account.

    ``spendable`` is the sum of completed entries. ``held`` is the sum of
    pending debits, ``available`` what can still be spent. ``withdrawable`` is
    the non-bonus share of the balance, never more than ``available``.
    """

    account_id: UUID
    spendable: int
    withdrawable: int
    held: int

    @property
    def available(self) -> int:
        return self.spendable - self.held

    @classmethod
    def from_totals(cls, account_id: UUID, spendable: int, withdrawable_raw: int, held: int) -> "Balance":
        available = spendable - held
        withdrawable = max(0, min(withdrawable_raw, available))
        return cls(account_id=account_id, spendable=spendable, withdrawable=withdrawable, held=held)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["available"] = self.available
        return data


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of comparing cached totals with a ledger replay."""

    account_id: UUID
    cached: tuple[int, int, int]
    replayed: tuple[int, int, int]

    @property
    def drifted(self) -> bool:
        return self.cached != self.replayed


class BalanceService:
    """Service for reading balances."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def balance(self, account_id: UUID) -> Balance:
        """Balance from the materialized totals on the account row."""
        row = (
            await self.db.execute(
                select(Account.spendable_balance, Account.withdrawable_balance, Account.held_balance)
                .where(Account.account_id == account_id)
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return Balance.from_totals(account_id, row.spendable_balance, row.withdrawable_balance, row.held_balance)

    async def _replay_totals(self, account_id: UUID) -> tuple[int, int, int]:
        completed = LedgerEntry.status == LedgerStatus.COMPLETED.value
        pending_debit = (LedgerEntry.status == LedgerStatus.PENDING.value) & (LedgerEntry.amount < 0)
        row = (
            await self.db.execute(
                select(
                    func.coalesce(func.sum(case((completed, LedgerEntry.amount), else_=0)), 0),
                    func.coalesce(
                        func.sum(case((completed & LedgerEntry.is_withdrawable, LedgerEntry.amount), else_=0)), 0
                    ),
                    func.coalesce(func.sum(case((pending_debit, -LedgerEntry.amount), else_=0)), 0),
                ).where(LedgerEntry.account_id == account_id)
            )
        ).one()
        return int(row[0]), int(row[1]), int(row[2])

    async def replay_balance(self, account_id: UUID) -> Balance:
        """Balance folded directly from the ledger, ignoring the cached totals."""
        spendable, withdrawable_raw, held = await self._replay_totals(account_id)
        return Balance.from_totals(account_id, spendable, withdrawable_raw, held)

    async def reconcile(self, account_id: UUID, auto_commit: bool = True) -> Reconciliation:
        """
        Replay the ledger and rewrite the cached totals if they drifted.

        Callers should hold the account lock so no append lands between the
        replay and the rewrite.
        """
        row = (
            await self.db.execute(
                select(Account.spendable_balance, Account.withdrawable_balance, Account.held_balance)
                .where(Account.account_id == account_id)
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError(f"Account not found: {account_id}")

        cached = (row.spendable_balance, row.withdrawable_balance, row.held_balance)
        replayed = await self._replay_totals(account_id)
        outcome = Reconciliation(account_id=account_id, cached=cached, replayed=replayed)

        if outcome.drifted:
            logger.error(f"Balance drift for account {account_id}: cached={cached}, ledger={replayed}")
            await self.db.execute(
                update(Account)
                .where(Account.account_id == account_id)
                .values(
                    spendable_balance=replayed[0],
                    withdrawable_balance=replayed[1],
                    held_balance=replayed[2],
                )
                .execution_options(synchronize_session=False)
            )
            if auto_commit:
                await self.db.commit()
            await self.db.get(Account, account_id, populate_existing=True)
        else:
            logger.debug(f"Balance for account {account_id} matches the ledger")

        return outcome

    async def can_afford(self, account_id: UUID, amount: int) -> bool:
        """Whether the available balance covers ``amount``."""
        balance = await self.balance(account_id)
        return balance.available >= amount

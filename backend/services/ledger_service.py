"""Ledger service: append-only record of coin movements."""
from datetime import datetime, UTC
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.account import Account
from backend.models.base import LedgerKind, LedgerStatus, SYSTEM_ACTOR
from backend.models.ledger_entry import LedgerEntry
from backend.utils.exceptions import (
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backend.utils.lock_client import LockClient, get_lock_client

logger = logging.getLogger(__name__)

CREDIT_KINDS = {LedgerKind.PRIZE, LedgerKind.REFUND, LedgerKind.TOPUP, LedgerKind.BONUS}
DEBIT_KINDS = {LedgerKind.ENTRY_FEE, LedgerKind.WITHDRAWAL}


def account_lock_name(account_id: UUID) -> str:
    return f"account:{account_id}"


class LedgerService:
    """Service for appending and resolving ledger entries.

    Every append or transition also moves the account's materialized totals
    in the same transaction, so the totals never disagree with the ledger
    once the session commits.
    """

    def __init__(self, db: AsyncSession, lock_client: LockClient | None = None):
        self.db = db
        self.lock_client = lock_client or get_lock_client()
        self.settings = get_settings()

    async def append(
        self,
        account_id: UUID,
        kind: LedgerKind | str,
        amount: int,
        *,
        status: LedgerStatus | str = LedgerStatus.COMPLETED,
        is_withdrawable: Optional[bool] = None,
        related_match_id: UUID | None = None,
        related_request_id: UUID | None = None,
        notes: str | None = None,
        created_by: str = SYSTEM_ACTOR,
        auto_commit: bool = True,
        skip_lock: bool = False,
    ) -> LedgerEntry:
        """
        Append a ledger entry and move the account totals atomically.

        Debits (completed or pending) are applied with a conditional update
        that only matches while ``spendable - held`` covers the amount, so a
        concurrent writer can never push the balance negative.

        Args:
            account_id: Account the coins belong to
            kind: Ledger kind; decides the allowed sign
            amount: Signed amount in coins (negative for debits)
            status: ``completed`` or ``pending``
            is_withdrawable: Defaults to False for bonus coins, True otherwise
            auto_commit: If True, commits immediately. If False, caller must commit.
            skip_lock: If True, assumes caller already holds the account lock.

        Returns:
            Created ledger entry

        Raises:
            ValidationError: Zero amount, unknown kind, wrong sign or status
            InsufficientBalanceError: Debit exceeds the available balance
            NotFoundError: Account does not exist
        """
        kind = self._coerce_kind(kind)
        status = self._coerce_status(status)
        self._validate_amount(kind, amount)
        if is_withdrawable is None:
            is_withdrawable = kind != LedgerKind.BONUS

        async def _append_impl() -> LedgerEntry:
            if amount < 0:
                if status == LedgerStatus.PENDING:
                    await self._apply_totals(account_id, held=-amount, guard=-amount)
                else:
                    await self._apply_totals(
                        account_id,
                        spendable=amount,
                        withdrawable=amount if is_withdrawable else 0,
                        guard=-amount,
                    )
            elif status == LedgerStatus.COMPLETED:
                await self._apply_totals(
                    account_id,
                    spendable=amount,
                    withdrawable=amount if is_withdrawable else 0,
                )
            else:
                # Pending credits only count once completed
                await self._ensure_account_exists(account_id)

            entry = LedgerEntry(
                account_id=account_id,
                kind=kind.value,
                amount=amount,
                status=status.value,
                is_withdrawable=is_withdrawable,
                related_match_id=related_match_id,
                related_request_id=related_request_id,
                notes=notes,
                created_by=str(created_by),
                resolved_at=datetime.now(UTC) if status == LedgerStatus.COMPLETED else None,
            )
            self.db.add(entry)
            await self.db.flush()

            if auto_commit:
                await self.db.commit()
                await self.db.refresh(entry)

            logger.info(
                f"Ledger entry appended: id={entry.entry_id}, account={account_id}, kind={kind.value}, "
                f"amount={amount}, status={status.value}, by={created_by}, auto_commit={auto_commit}"
            )
            return entry

        if skip_lock:
            return await _append_impl()
        async with self.lock_client.lock(account_lock_name(account_id), timeout=self.settings.lock_timeout_seconds):
            return await _append_impl()

    async def transition(
        self,
        entry_id: int,
        new_status: LedgerStatus | str,
        *,
        auto_commit: bool = True,
        skip_lock: bool = False,
    ) -> LedgerEntry:
        """
        Resolve a pending entry to ``completed`` or ``rejected``.

        The status change is a conditional update on ``status = 'pending'``,
        so of two concurrent resolutions exactly one succeeds.

        Raises:
            InvalidTransitionError: Entry is not pending or target is not terminal
            NotFoundError: Entry does not exist
        """
        new_status = self._coerce_status(new_status, allowed=(LedgerStatus.COMPLETED, LedgerStatus.REJECTED))
        entry = await self.get_entry(entry_id)

        async def _transition_impl() -> LedgerEntry:
            result = await self.db.execute(
                update(LedgerEntry)
                .where(LedgerEntry.entry_id == entry_id, LedgerEntry.status == LedgerStatus.PENDING.value)
                .values(status=new_status.value, resolved_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InvalidTransitionError(f"Ledger entry {entry_id} is no longer pending")

            if entry.amount < 0:
                if new_status == LedgerStatus.COMPLETED:
                    await self._apply_totals(
                        entry.account_id,
                        spendable=entry.amount,
                        withdrawable=entry.amount if entry.is_withdrawable else 0,
                        held=entry.amount,
                    )
                else:
                    await self._apply_totals(entry.account_id, held=entry.amount)
            elif new_status == LedgerStatus.COMPLETED:
                await self._apply_totals(
                    entry.account_id,
                    spendable=entry.amount,
                    withdrawable=entry.amount if entry.is_withdrawable else 0,
                )

            if auto_commit:
                await self.db.commit()
            resolved = await self.db.get(LedgerEntry, entry_id, populate_existing=True)

            logger.info(
                f"Ledger entry {entry_id} transitioned pending -> {new_status.value} "
                f"(account={entry.account_id}, amount={entry.amount})"
            )
            return resolved

        if skip_lock:
            return await _transition_impl()
        async with self.lock_client.lock(
            account_lock_name(entry.account_id), timeout=self.settings.lock_timeout_seconds
        ):
            return await _transition_impl()

    async def get_entry(self, entry_id: int) -> LedgerEntry:
        entry = await self.db.get(LedgerEntry, entry_id, populate_existing=True)
        if not entry:
            raise NotFoundError(f"Ledger entry not found: {entry_id}")
        return entry

    async def entries_for(
        self,
        account_id: UUID,
        since_id: int | None = None,
        status: LedgerStatus | str | None = None,
    ) -> list[LedgerEntry]:
        """All entries for an account in insertion order."""
        stmt = select(LedgerEntry).where(LedgerEntry.account_id == account_id)
        if since_id is not None:
            stmt = stmt.where(LedgerEntry.entry_id > since_id)
        if status is not None:
            stmt = stmt.where(LedgerEntry.status == self._coerce_status(status, allowed=tuple(LedgerStatus)).value)
        result = await self.db.execute(stmt.order_by(LedgerEntry.entry_id))
        return list(result.scalars().all())

    async def history(self, account_id: UUID, limit: int = 50, offset: int = 0) -> tuple[list[LedgerEntry], int]:
        """Newest-first page of entries plus the total count."""
        total = await self.db.scalar(
            select(func.count()).select_from(LedgerEntry).where(LedgerEntry.account_id == account_id)
        )
        result = await self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.entry_id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def has_entry(
        self,
        account_id: UUID,
        kind: LedgerKind | str,
        related_match_id: UUID | None = None,
    ) -> bool:
        stmt = select(LedgerEntry.entry_id).where(
            LedgerEntry.account_id == account_id,
            LedgerEntry.kind == self._coerce_kind(kind).value,
            LedgerEntry.status != LedgerStatus.REJECTED.value,
        )
        if related_match_id is not None:
            stmt = stmt.where(LedgerEntry.related_match_id == related_match_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def _apply_totals(
        self,
        account_id: UUID,
        *,
        spendable: int = 0,
        withdrawable: int = 0,
        held: int = 0,
        guard: int | None = None,
    ) -> Account:
        """Move the materialized totals; ``guard`` requires that much available balance."""
        stmt = (
            update(Account)
            .where(Account.account_id == account_id)
            .values(
                spendable_balance=Account.spendable_balance + spendable,
                withdrawable_balance=Account.withdrawable_balance + withdrawable,
                held_balance=Account.held_balance + held,
            )
            .execution_options(synchronize_session=False)
        )
        if guard is not None:
            stmt = stmt.where(Account.spendable_balance - Account.held_balance >= guard)

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            row = (
                await self.db.execute(
                    select(Account.spendable_balance, Account.held_balance).where(Account.account_id == account_id)
                )
            ).one_or_none()
            if row is None:
                raise NotFoundError(f"Account not found: {account_id}")
            available = row.spendable_balance - row.held_balance
            raise InsufficientBalanceError(shortfall=guard - available)

        # Keep any loaded Account instance in step with the row
        return await self.db.get(Account, account_id, populate_existing=True)

    async def _ensure_account_exists(self, account_id: UUID) -> None:
        found = await self.db.scalar(select(Account.account_id).where(Account.account_id == account_id))
        if found is None:
            raise NotFoundError(f"Account not found: {account_id}")

    @staticmethod
    def _coerce_kind(kind: LedgerKind | str) -> LedgerKind:
        try:
            return LedgerKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown ledger kind: {kind}")

    @staticmethod
    def _coerce_status(
        status: LedgerStatus | str,
        allowed: tuple[LedgerStatus, ...] = (LedgerStatus.PENDING, LedgerStatus.COMPLETED),
    ) -> LedgerStatus:
        try:
            status = LedgerStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown ledger status: {status}")
        if status not in allowed:
            if LedgerStatus.PENDING in allowed:
                raise ValidationError(f"Entries cannot be created as {status.value}")
            raise InvalidTransitionError(f"Cannot transition a ledger entry to {status.value}")
        return status

    @staticmethod
    def _validate_amount(kind: LedgerKind, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("Amount must be a whole number of coins")
        if amount == 0:
            raise ValidationError("Amount must be non-zero")
        if kind in CREDIT_KINDS and amount < 0:
            raise ValidationError(f"{kind.value} entries must be credits")
        if kind in DEBIT_KINDS and amount > 0:
            raise ValidationError(f"{kind.value} entries must be debits")

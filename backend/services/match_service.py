"""Match economy: entry, settlement and cancellation coupled to the ledger."""
from datetime import datetime, UTC
from typing import Any, Iterable, Optional
from uuid import UUID
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.models.base import LedgerKind, MatchStatus, MatchType, ResultStatus, Role
from backend.models.match import Match
from backend.models.match_entry import MatchEntry
from backend.services.audit_service import AuditAction, AuditService
from backend.services.balance_service import BalanceService
from backend.services.ledger_service import LedgerService, account_lock_name
from backend.services.matchmaking_client import MatchmakingClient, MatchmakingServiceError, get_matchmaking_client
from backend.services.notification_service import NotificationService, NotificationType
from backend.services.realtime_service import RealtimeService, get_realtime_service
from backend.services.role_service import RoleService
from backend.utils.exceptions import (
    AlreadyJoinedError,
    BusinessRuleError,
    InsufficientBalanceError,
    InvalidTransitionError,
    MatchFullError,
    MatchNotJoinableError,
    NotFoundError,
    NotVerifiedError,
    TransientBackendError,
    ValidationError,
)
from backend.utils.lock_client import LockClient, get_lock_client
from backend.utils.retry import with_backoff

logger = logging.getLogger(__name__)


def match_lock_name(match_id: UUID) -> str:
    return f"match:{match_id}"


class MatchService:
    """Service for the match lifecycle.

    Lock order is always match lock first, then account lock, so joins,
    settlement and cancellation never wait on each other in a cycle.
    """

    # Slot picks retried when another worker claims the same slot first
    SLOT_PICK_ATTEMPTS = 5

    def __init__(
        self,
        db: AsyncSession,
        lock_client: LockClient | None = None,
        matchmaking: MatchmakingClient | None = None,
        realtime: RealtimeService | None = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.lock_client = lock_client or get_lock_client()
        self.matchmaking = matchmaking or get_matchmaking_client()
        self.realtime = realtime or get_realtime_service()
        self.ledger = LedgerService(db, lock_client=self.lock_client)
        self.balances = BalanceService(db)
        self.roles = RoleService(db)
        self.audit = AuditService(db)
        self.notifications = NotificationService(db, realtime=self.realtime)

    def _match_lock(self, match_id: UUID):
        return self.lock_client.lock(match_lock_name(match_id), timeout=self.settings.lock_timeout_seconds)

    def _account_lock(self, account_id: UUID):
        return self.lock_client.lock(account_lock_name(account_id), timeout=self.settings.lock_timeout_seconds)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_match(self, match_id: UUID) -> Match:
        match = await self.db.get(Match, match_id, populate_existing=True)
        if not match:
            raise NotFoundError("Match not found")
        return match

    async def list_matches(self, status: MatchStatus | str | None = None, limit: int = 100) -> list[Match]:
        stmt = select(Match)
        if status is not None:
            stmt = stmt.where(Match.status == MatchStatus(status).value)
        result = await self.db.execute(stmt.order_by(Match.start_time, Match.created_at).limit(limit))
        return list(result.scalars().all())

    async def get_entries(self, match_id: UUID) -> list[MatchEntry]:
        result = await self.db.execute(
            select(MatchEntry)
            .where(MatchEntry.match_id == match_id)
            .order_by(MatchEntry.slot_number)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_entry(self, match_id: UUID, account_id: UUID) -> Optional[MatchEntry]:
        result = await self.db.execute(
            select(MatchEntry)
            .where(MatchEntry.match_id == match_id, MatchEntry.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Admin: create and activate
    # ------------------------------------------------------------------

    async def create_match(
        self,
        admin_id: UUID,
        *,
        entry_fee: int,
        total_slots: int,
        match_type: MatchType | str = MatchType.BATTLE_ROYALE,
        prize_pool: int = 0,
        first_prize: int | None = None,
        second_prize: int | None = None,
        third_prize: int | None = None,
        coins_per_kill: int = 0,
        title: str | None = None,
        start_time: datetime | None = None,
    ) -> Match:
        """Create an upcoming match. Admin only."""
        await self.roles.require_role(admin_id, Role.ADMIN)

        try:
            match_type = MatchType(match_type)
        except ValueError:
            raise ValidationError(f"Unknown match type: {match_type}")
        if not 0 <= entry_fee <= self.settings.max_entry_fee:
            raise ValidationError(f"Entry fee must be between 0 and {self.settings.max_entry_fee}")
        if not 1 <= total_slots <= self.settings.max_match_slots:
            raise ValidationError(f"Total slots must be between 1 and {self.settings.max_match_slots}")
        for label, value in (
            ("prize_pool", prize_pool),
            ("first_prize", first_prize),
            ("second_prize", second_prize),
            ("third_prize", third_prize),
            ("coins_per_kill", coins_per_kill),
        ):
            if value is not None and value < 0:
                raise ValidationError(f"{label} cannot be negative")

        match = Match(
            title=title,
            match_type=match_type.value,
            entry_fee=entry_fee,
            total_slots=total_slots,
            filled_slots=0,
            prize_pool=prize_pool,
            first_prize=first_prize,
            second_prize=second_prize,
            third_prize=third_prize,
            coins_per_kill=coins_per_kill,
            start_time=start_time,
            status=MatchStatus.UPCOMING.value,
            created_by=admin_id,
        )
        self.db.add(match)
        await self.db.flush()
        await self.audit.record(
            admin_id,
            AuditAction.MATCH_CREATED,
            target_id=match.match_id,
            details={"entry_fee": entry_fee, "total_slots": total_slots, "match_type": match_type.value},
        )
        await self.db.commit()
        await self.db.refresh(match)

        logger.info(
            f"Match {match.match_id} created by {admin_id}: type={match_type.value}, "
            f"fee={entry_fee}, slots={total_slots}, pool={prize_pool}"
        )
        return match

    async def activate_match(
        self,
        match_id: UUID,
        admin_id: UUID,
        room_id: str | None = None,
        room_password: str | None = None,
    ) -> Match:
        """
        Move an upcoming match to active and reveal room credentials.

        When no credentials are supplied they are requested from the
        matchmaking service; an upstream failure is logged and the match is
        activated anyway so credentials can be refreshed later.
        """
        await self.roles.require_role(admin_id, Role.ADMIN)

        async with self._match_lock(match_id):
            match = await self.get_match(match_id)
            if match.status != MatchStatus.UPCOMING.value:
                raise InvalidTransitionError(f"Cannot activate a match that is {match.status}")

            if room_id is None and self.matchmaking.enabled:
                try:
                    credentials = await self._fetch_credentials(match_id)
                    room_id, room_password = credentials.room_id, credentials.room_password
                except TransientBackendError as e:
                    logger.warning(f"Activating match {match_id} without room credentials: {e.__cause__ or e}")

            match.status = MatchStatus.ACTIVE.value
            match.activated_at = datetime.now(UTC)
            match.room_id = room_id
            match.room_password = room_password

            entries = await self.get_entries(match_id)
            for entry in entries:
                await self.notifications.create(
                    entry.account_id,
                    NotificationType.MATCH_ACTIVATED,
                    f"{match.title or 'Your match'} is live, room details are available",
                    data={"match_id": str(match_id)},
                )
            await self.audit.record(
                admin_id,
                AuditAction.MATCH_ACTIVATED,
                target_id=match_id,
                details={"has_room_credentials": bool(room_id)},
            )
            await self.db.commit()

        logger.info(f"Match {match_id} activated by {admin_id} (credentials={'yes' if room_id else 'pending'})")
        self.realtime.publish_match(match_id, "activated")
        for entry in entries:
            self.realtime.publish_account(entry.account_id, "match_activated")
        return match

    async def refresh_room_credentials(self, match_id: UUID, admin_id: UUID) -> Match:
        """
        Retry the upstream credential lookup for an active match.

        Raises:
            TransientBackendError: Matchmaking service still unavailable
        """
        await self.roles.require_role(admin_id, Role.ADMIN)

        async with self._match_lock(match_id):
            match = await self.get_match(match_id)
            if match.status != MatchStatus.ACTIVE.value:
                raise InvalidTransitionError("Room credentials can only be refreshed for active matches")
            if not self.matchmaking.enabled:
                raise TransientBackendError("Matchmaking service is not configured")

            credentials = await self._fetch_credentials(match_id)
            match.room_id = credentials.room_id
            match.room_password = credentials.room_password
            await self.db.commit()

        logger.info(f"Room credentials refreshed for match {match_id}")
        self.realtime.publish_match(match_id, "credentials_updated")
        return match

    async def _fetch_credentials(self, match_id: UUID):
        return await with_backoff(
            lambda: self.matchmaking.fetch_room_credentials(match_id),
            attempts=self.settings.backend_retry_attempts,
            base_delay=self.settings.backend_retry_base_delay,
            max_delay=self.settings.backend_retry_max_delay,
            retry_on=(MatchmakingServiceError,),
            should_retry=None,
        )

    # ------------------------------------------------------------------
    # Player: join and submit results
    # ------------------------------------------------------------------

    async def join_match(self, match_id: UUID, account_id: UUID, entry_fee: int | None = None) -> MatchEntry:
        """
        Reserve a slot and pay the entry fee in one transaction.

        The slot counter is incremented with a conditional update and the fee
        is a guarded debit, so neither over-joining nor double spending is
        possible even if two processes race past the locks. A slot number
        claimed by a racing worker is picked again while the match still has
        room.

        Raises:
            MatchNotJoinableError: Match is not upcoming
            MatchFullError: No free slot left
            AlreadyJoinedError: Account already holds a slot
            InsufficientBalanceError: Balance does not cover the fee
            ValidationError: ``entry_fee`` given and differs from the match fee
            TransientBackendError: Every free slot was claimed by racing workers
        """
        async with self._match_lock(match_id):
            async with self._account_lock(account_id):
                match = await self.get_match(match_id)

                if match.status != MatchStatus.UPCOMING.value:
                    raise MatchNotJoinableError("Match is not open for joining")
                if entry_fee is not None and entry_fee != match.entry_fee:
                    raise ValidationError(f"Entry fee for this match is {match.entry_fee} coins")
                if match.filled_slots >= match.total_slots:
                    raise MatchFullError("Match is full")
                if await self.get_entry(match_id, account_id):
                    raise AlreadyJoinedError("You have already joined this match")

                fee = match.entry_fee
                if fee > 0:
                    balance = await self.balances.balance(account_id)
                    if balance.available < fee:
                        raise InsufficientBalanceError(shortfall=fee - balance.available)

                for attempt in range(1, self.SLOT_PICK_ATTEMPTS + 1):
                    slot_number = await self._next_free_slot(match)
                    try:
                        entry = await self._apply_join(match, account_id, slot_number, fee)
                        break
                    except IntegrityError as e:
                        await self.db.rollback()
                        logger.warning(
                            f"Join of match {match_id} by {account_id} hit a constraint "
                            f"(slot {slot_number}, attempt {attempt}): {e.orig}"
                        )
                        if await self.get_entry(match_id, account_id):
                            raise AlreadyJoinedError("You have already joined this match")
                        match = await self.get_match(match_id)
                        if match.status != MatchStatus.UPCOMING.value:
                            raise MatchNotJoinableError("Match is not open for joining")
                        if match.filled_slots >= match.total_slots:
                            raise MatchFullError("Match is full")
                    except BusinessRuleError:
                        await self.db.rollback()
                        raise
                else:
                    raise TransientBackendError("Could not reserve a slot, please try again")

        logger.info(
            f"Account {account_id} joined match {match_id} in slot {slot_number} "
            f"(fee={fee}, filled={match.filled_slots}/{match.total_slots})"
        )
        self.realtime.publish_match(match_id, "slots_changed")
        self.notifications.push(account_id)
        return entry

    async def _apply_join(self, match: Match, account_id: UUID, slot_number: int, fee: int) -> MatchEntry:
        result = await self.db.execute(
            update(Match)
            .where(
                Match.match_id == match.match_id,
                Match.status == MatchStatus.UPCOMING.value,
                Match.filled_slots < Match.total_slots,
            )
            .values(filled_slots=Match.filled_slots + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise MatchFullError("Match is full")

        entry = MatchEntry(
            match_id=match.match_id,
            account_id=account_id,
            slot_number=slot_number,
            paid=True,
            entry_fee_paid=fee,
        )
        self.db.add(entry)
        await self.db.flush()

        if fee > 0:
            ledger_entry = await self.ledger.append(
                account_id,
                LedgerKind.ENTRY_FEE,
                -fee,
                related_match_id=match.match_id,
                notes=f"Entry fee for {match.title or match.match_type} (slot {slot_number})",
                auto_commit=False,
                skip_lock=True,  # Lock already acquired by join_match
            )
            entry.ledger_entry_id = ledger_entry.entry_id

        await self.notifications.create(
            account_id,
            NotificationType.MATCH_JOINED,
            f"You joined {match.title or 'a match'} in slot {slot_number}",
            data={"match_id": str(match.match_id), "slot_number": slot_number, "entry_fee": fee},
        )
        await self.db.commit()
        await self.db.refresh(match)
        return entry

    async def _next_free_slot(self, match: Match) -> int:
        """Lowest unused slot number, starting at 1."""
        result = await self.db.execute(
            select(MatchEntry.slot_number).where(MatchEntry.match_id == match.match_id)
        )
        taken = set(result.scalars().all())
        for slot in range(1, match.total_slots + 1):
            if slot not in taken:
                return slot
        raise MatchFullError("Match is full")

    async def submit_result(self, match_id: UUID, account_id: UUID, kills: int, placement: int) -> MatchEntry:
        """Record a player's own result for admin verification."""
        async with self._match_lock(match_id):
            match = await self.get_match(match_id)
            if match.status != MatchStatus.ACTIVE.value:
                raise InvalidTransitionError("Results can only be submitted for active matches")

            entry = await self.get_entry(match_id, account_id)
            if not entry:
                raise NotFoundError("You have not joined this match")
            if entry.result_status == ResultStatus.VERIFIED.value:
                raise InvalidTransitionError("Your result has already been verified")

            self._validate_result(match, kills, placement)
            entry.kills = kills
            entry.placement = placement
            entry.result_status = ResultStatus.PENDING.value
            entry.result_submitted_at = datetime.now(UTC)
            entry.verified_by = None
            entry.verified_at = None
            await self.db.commit()

        logger.info(f"Result submitted for match {match_id} by {account_id}: placement={placement}, kills={kills}")
        self.realtime.publish_match(match_id, "result_submitted")
        return entry

    @staticmethod
    def _validate_result(match: Match, kills: Any, placement: Any) -> None:
        if not isinstance(kills, int) or kills < 0:
            raise ValidationError("Kills must be a non-negative whole number")
        if not isinstance(placement, int) or not 1 <= placement <= match.total_slots:
            raise ValidationError(f"Placement must be between 1 and {match.total_slots}")

    async def verify_result(
        self,
        match_id: UUID,
        account_id: UUID,
        admin_id: UUID,
        approve: bool,
        note: str | None = None,
    ) -> MatchEntry:
        """Approve or reject a pending result. Admin only."""
        await self.roles.require_role(admin_id, Role.ADMIN)

        async with self._match_lock(match_id):
            entry = await self.get_entry(match_id, account_id)
            if not entry:
                raise NotFoundError("Match entry not found")
            if entry.result_status != ResultStatus.PENDING.value:
                raise InvalidTransitionError(f"Result is {entry.result_status}, not pending")

            entry.result_status = (ResultStatus.VERIFIED if approve else ResultStatus.REJECTED).value
            entry.verified_by = admin_id
            entry.verified_at = datetime.now(UTC)
            entry.verification_note = note

            if approve:
                message = f"Your result (placement #{entry.placement}, {entry.kills} kills) was verified"
                notification_type = NotificationType.RESULT_VERIFIED
            else:
                message = f"Your result was rejected{': ' + note if note else ''}"
                notification_type = NotificationType.RESULT_REJECTED
            await self.notifications.create(account_id, notification_type, message, data={"match_id": str(match_id)})
            await self.audit.record(
                admin_id,
                AuditAction.RESULT_VERIFIED,
                target_id=account_id,
                details={"match_id": str(match_id), "approved": approve, "note": note},
            )
            await self.db.commit()

        logger.info(f"Result for match {match_id} / account {account_id} {'verified' if approve else 'rejected'}")
        self.notifications.push(account_id)
        return entry

    # ------------------------------------------------------------------
    # Admin: settle and cancel
    # ------------------------------------------------------------------

    async def settle_match(
        self,
        match_id: UUID,
        admin_id: UUID,
        results: Iterable[dict] | None = None,
    ) -> list:
        """
        Pay prizes from verified results and complete the match.

        ``results`` lets the admin enter placements directly; they are stored
        as verified. Every prize is appended in the same transaction as the
        status change.

        Returns:
            The prize ledger entries written

        Raises:
            NotVerifiedError: A submitted result is still awaiting verification
            InvalidTransitionError: Match is not active
        """
        await self.roles.require_role(admin_id, Role.ADMIN)

        async with self._match_lock(match_id):
            match = await self.get_match(match_id)
            if match.status != MatchStatus.ACTIVE.value:
                raise InvalidTransitionError(f"Cannot settle a match that is {match.status}")

            entries = await self.get_entries(match_id)
            by_account = {entry.account_id: entry for entry in entries}
            now = datetime.now(UTC)

            try:
                for result in results or []:
                    entry = by_account.get(self._as_uuid(result.get("account_id")))
                    if entry is None:
                        raise ValidationError("Result given for an account that did not join this match")
                    kills = result.get("kills", 0) or 0
                    placement = result.get("placement")
                    self._validate_result(match, kills, placement)
                    entry.kills = kills
                    entry.placement = placement
                    entry.result_status = ResultStatus.VERIFIED.value
                    entry.verified_by = admin_id
                    entry.verified_at = now

                unverified = [e for e in entries if e.result_status == ResultStatus.PENDING.value]
                if unverified:
                    raise NotVerifiedError(f"{len(unverified)} result(s) still awaiting verification")

                verified = [e for e in entries if e.result_status == ResultStatus.VERIFIED.value]
                self._check_unique_prize_places(match, verified)

                prize_entries = []
                for entry in verified:
                    prize_entries.extend(await self._pay_prizes(match, entry, admin_id))

                match.status = MatchStatus.COMPLETED.value
                match.settled_at = now
                await self.audit.record(
                    admin_id,
                    AuditAction.MATCH_SETTLED,
                    target_id=match_id,
                    details={
                        "winners": len({p.account_id for p in prize_entries}),
                        "total_paid": sum(p.amount for p in prize_entries),
                    },
                )
                await self.db.commit()
            except BusinessRuleError:
                await self.db.rollback()
                raise

        logger.info(
            f"Match {match_id} settled by {admin_id}: {len(prize_entries)} prize entries, "
            f"{sum(p.amount for p in prize_entries)} coins"
        )
        self.realtime.publish_match(match_id, "completed")
        for account_id in {p.account_id for p in prize_entries}:
            self.notifications.push(account_id)
        return prize_entries

    @staticmethod
    def _check_unique_prize_places(match: Match, verified: list[MatchEntry]) -> None:
        seen: set[int] = set()
        for entry in verified:
            if entry.placement in match.placement_prizes:
                if entry.placement in seen:
                    raise ValidationError(f"More than one verified result claims placement #{entry.placement}")
                seen.add(entry.placement)

    async def _pay_prizes(self, match: Match, entry: MatchEntry, admin_id: UUID) -> list:
        paid = []
        placement_prize = match.placement_prizes.get(entry.placement, 0)
        kill_prize = 0
        if match.match_type == MatchType.BATTLE_ROYALE.value and match.coins_per_kill:
            kill_prize = (entry.kills or 0) * match.coins_per_kill

        if not placement_prize and not kill_prize:
            return paid

        async with self._account_lock(entry.account_id):
            if placement_prize:
                paid.append(await self.ledger.append(
                    entry.account_id,
                    LedgerKind.PRIZE,
                    placement_prize,
                    related_match_id=match.match_id,
                    notes=f"Placement #{entry.placement} prize",
                    created_by=str(admin_id),
                    auto_commit=False,
                    skip_lock=True,
                ))
            if kill_prize:
                paid.append(await self.ledger.append(
                    entry.account_id,
                    LedgerKind.PRIZE,
                    kill_prize,
                    related_match_id=match.match_id,
                    notes=f"{entry.kills} kills x {match.coins_per_kill} coins",
                    created_by=str(admin_id),
                    auto_commit=False,
                    skip_lock=True,
                ))

        await self.notifications.create(
            entry.account_id,
            NotificationType.PRIZE_AWARDED,
            f"You won {placement_prize + kill_prize} coins in {match.title or 'your match'}",
            data={"match_id": str(match.match_id), "placement": entry.placement, "kills": entry.kills},
        )
        return paid

    async def cancel_match(self, match_id: UUID, admin_id: UUID) -> int:
        """
        Cancel a match and refund every paid entry.

        The status change commits first; each refund then commits on its own
        and is skipped when a refund entry already exists for that account and
        match. Calling this again (for example after a partial failure)
        finishes outstanding refunds and never pays one twice.

        Returns:
            Number of refunds written by this call
        """
        await self.roles.require_role(admin_id, Role.ADMIN)

        async with self._match_lock(match_id):
            match = await self.get_match(match_id)
            if match.status == MatchStatus.COMPLETED.value:
                raise InvalidTransitionError("Cannot cancel a completed match")

            if match.status != MatchStatus.CANCELLED.value:
                match.status = MatchStatus.CANCELLED.value
                match.cancelled_at = datetime.now(UTC)
                await self.audit.record(admin_id, AuditAction.MATCH_CANCELLED, target_id=match_id)
                await self.db.commit()
                logger.info(f"Match {match_id} cancelled by {admin_id}")
            else:
                logger.info(f"Match {match_id} already cancelled, checking for outstanding refunds")

            refunded = []
            for entry in await self.get_entries(match_id):
                if not entry.paid or entry.entry_fee_paid <= 0:
                    continue
                async with self._account_lock(entry.account_id):
                    if await self.ledger.has_entry(entry.account_id, LedgerKind.REFUND, related_match_id=match_id):
                        continue
                    await self.ledger.append(
                        entry.account_id,
                        LedgerKind.REFUND,
                        entry.entry_fee_paid,
                        related_match_id=match_id,
                        notes=f"Refund for cancelled {match.title or 'match'}",
                        created_by=str(admin_id),
                        auto_commit=False,
                        skip_lock=True,
                    )
                    entry.refunded = True
                    await self.notifications.create(
                        entry.account_id,
                        NotificationType.MATCH_REFUND,
                        f"{match.title or 'A match'} was cancelled, {entry.entry_fee_paid} coins refunded",
                        data={"match_id": str(match_id), "amount": entry.entry_fee_paid},
                    )
                    await self.db.commit()
                refunded.append(entry.account_id)
                logger.info(f"Refunded {entry.entry_fee_paid} coins to {entry.account_id} for match {match_id}")

        self.realtime.publish_match(match_id, "cancelled")
        for account_id in refunded:
            self.notifications.push(account_id)
        return len(refunded)

    @staticmethod
    def _as_uuid(value: Any) -> UUID | None:
        if value is None or isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError:
            raise ValidationError(f"Invalid account id: {value}")

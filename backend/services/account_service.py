"""Account service: local mirror of identities issued by the auth provider."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.account import Account
from backend.models.base import Role
from backend.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class AccountService:
    """Service for looking up and creating accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account(self, account_id: UUID) -> Optional[Account]:
        return await self.db.get(Account, account_id)

    async def require_account(self, account_id: UUID) -> Account:
        account = await self.get_account(account_id)
        if not account:
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    async def get_by_username(self, username: str) -> Optional[Account]:
        result = await self.db.execute(select(Account).where(Account.username == username))
        return result.scalars().first()

    async def create_account(
        self,
        username: str,
        *,
        account_id: UUID | None = None,
        email: str | None = None,
        role: Role = Role.PLAYER,
    ) -> Account:
        """Create an account with an empty balance."""
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required")

        account = Account(username=username, email=email, role=Role(role).value)
        if account_id is not None:
            account.account_id = account_id
        self.db.add(account)
        await self.db.commit()
        await self.db.refresh(account)
        logger.info(f"Created account {account.account_id} ({username}) with role {account.role}")
        return account

    async def ensure_account(
        self,
        account_id: UUID,
        username: str | None = None,
        email: str | None = None,
    ) -> Account:
        """
        Return the account for an authenticated subject, creating it on first sight.

        New accounts always start as players; role claims from the token are
        never trusted.
        """
        account = await self.get_account(account_id)
        if account:
            return account

        try:
            return await self.create_account(
                username or f"player-{str(account_id)[:8]}",
                account_id=account_id,
                email=email,
            )
        except IntegrityError:
            # Concurrent first request created it
            await self.db.rollback()
            account = await self.get_account(account_id)
            if not account:
                raise
            return account

"""Role and access gate for privileged operations."""
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.account import Account
from backend.models.base import Role
from backend.services.audit_service import AuditAction, AuditService
from backend.services.notification_service import NotificationService, NotificationType
from backend.utils.exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class RoleService:
    """Checks and changes account roles.

    Roles are always read from the database, never from token claims or
    request payloads, so a demotion takes effect on the very next call.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_role(self, account_id: UUID) -> Role | None:
        result = await self.db.execute(select(Account.role).where(Account.account_id == account_id))
        role = result.scalar_one_or_none()
        return Role(role) if role else None

    async def require_role(self, account_id: UUID, minimum_role: Role) -> Role:
        """
        Ensure the account holds at least ``minimum_role``.

        Raises:
            ForbiddenError: Unknown account or insufficient role. The message
                never names the resource being protected.
        """
        role = await self.get_role(account_id)
        if role is None or role.rank < Role(minimum_role).rank:
            logger.warning(f"Access denied for account {account_id}: requires {Role(minimum_role).value}")
            raise ForbiddenError()
        return role

    async def is_admin(self, account_id: UUID) -> bool:
        role = await self.get_role(account_id)
        return role is not None and role.rank >= Role.ADMIN.rank

    async def grant_role(self, actor_id: UUID, target_id: UUID, role: Role | str) -> Account:
        """
        Set the target's role. Superadmin only, audited.

        Raises:
            ForbiddenError: Actor is not a superadmin
            ValidationError: Unknown role
            NotFoundError: Target account does not exist
        """
        await self.require_role(actor_id, Role.SUPERADMIN)
        try:
            new_role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}")

        target = await self.db.get(Account, target_id, populate_existing=True)
        if not target:
            raise NotFoundError(f"Account not found: {target_id}")

        old_role = target.role
        target.role = new_role.value

        await AuditService(self.db).record(
            actor_id,
            AuditAction.ROLE_GRANTED,
            target_id=target_id,
            details={"old_role": old_role, "new_role": new_role.value},
        )
        notifications = NotificationService(self.db)
        await notifications.create(
            target_id,
            NotificationType.ROLE_CHANGED,
            f"Your role is now {new_role.value}",
            data={"role": new_role.value},
        )
        await self.db.commit()
        notifications.push(target_id)

        logger.info(f"Role of account {target_id} changed {old_role} -> {new_role.value} by {actor_id}")
        return target

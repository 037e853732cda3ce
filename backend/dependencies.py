"""FastAPI dependencies."""
import logging
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request
from jwt import ExpiredSignatureError, InvalidTokenError, decode as decode_jwt
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.database import get_db
from backend.models.account import Account
from backend.models.base import Role
from backend.services.account_service import AccountService
from backend.services.role_service import RoleService

logger = logging.getLogger(__name__)


class AuthError(RuntimeError):
    """Raised when a bearer token cannot be trusted."""


def _mask_identifier(identifier: str) -> str:
    """Mask a sensitive identifier for logging (e.g., account_id, token)."""
    if not identifier:
        return "<missing>"
    if len(identifier) <= 8:
        return f"{identifier[:2]}...{identifier[-2:]}"
    return f"{identifier[:4]}...{identifier[-4:]}"


def decode_access_token(token: str) -> dict:
    """Verify a token issued by the auth provider and return its claims."""
    settings = get_settings()
    try:
        return decode_jwt(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise AuthError("token_expired") from exc
    except InvalidTokenError as exc:
        raise AuthError("invalid_token") from exc


async def resolve_account_from_token(token: str, db: AsyncSession) -> Account:
    """
    Map a token to the local account, mirroring the subject on first sight.

    Only ``sub``, ``username`` and ``email`` are read; any role claim in the
    token is ignored because roles live in the database.
    """
    payload = decode_access_token(token)
    subject = payload.get("sub")
    if not subject:
        raise AuthError("invalid_token")
    try:
        account_id = UUID(str(subject))
    except ValueError as exc:
        raise AuthError("invalid_token") from exc

    return await AccountService(db).ensure_account(
        account_id,
        username=payload.get("username"),
        email=payload.get("email"),
    )


async def get_current_account(
        request: Request,
        authorization: str | None = Header(default=None, alias="Authorization"),
        db: AsyncSession = Depends(get_db),
) -> Account:
    """Resolve the current authenticated account via JWT access token.

    Checks for access token in the following order:
    1. HTTP-only cookie
    2. Authorization header (API clients)
    """
    settings = get_settings()
    token = request.cookies.get(settings.access_token_cookie_name)

    if not token and authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise HTTPException(status_code=401, detail="invalid_authorization_header")

    if not token:
        raise HTTPException(status_code=401, detail="missing_credentials")

    try:
        return await resolve_account_from_token(token, db)
    except AuthError as exc:
        logger.info(f"Rejected token {_mask_identifier(token)}: {exc}")
        raise HTTPException(status_code=401, detail=str(exc)) from exc


async def get_admin_account(
        account: Account = Depends(get_current_account),
        db: AsyncSession = Depends(get_db),
) -> Account:
    """Current account, required to hold at least the admin role.

    ForbiddenError propagates to the application's error handler.
    """
    await RoleService(db).require_role(account.account_id, Role.ADMIN)
    return account

"""Pytest configuration and fixtures."""
import os
import uuid
from pathlib import Path

import jwt
import pytest
from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

BASE_DIR = Path(__file__).resolve().parent.parent
TEST_DB_PATH = BASE_DIR / "test.db"

# Dedicated SQLite database, no upstream services, withdrawals open all day
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["REDIS_URL"] = ""
os.environ["MATCHMAKING_API_URL"] = ""
os.environ["WITHDRAWAL_WINDOW_ENABLED"] = "false"
os.environ["BACKEND_RETRY_BASE_DELAY"] = "0.01"
os.environ["BACKEND_RETRY_MAX_DELAY"] = "0.05"

from backend.config import get_settings
from backend.database import Base
import backend.models  # noqa: F401
from backend.models.base import LedgerKind, Role
from backend.utils.lock_client import LockClient

settings = get_settings()


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply database migrations against the test database."""
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()

    alembic_cfg = AlembicConfig(str(BASE_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    command.upgrade(alembic_cfg, "head")

    yield

    if TEST_DB_PATH.exists():
        try:
            TEST_DB_PATH.unlink()
        except PermissionError:
            # Windows keeps the file open until the process exits
            pass


@pytest.fixture
async def test_engine():
    """Engine on the migrated database, emptied before each test."""
    engine = create_async_engine(settings.database_url, echo=False)
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def lock_client():
    """Fresh in-memory lock client per test."""
    return LockClient(None)


@pytest.fixture
async def test_app(session_factory):
    """Create test app with database override."""
    from backend.main import app
    from backend.database import get_db

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def account_factory(db_session):
    """Factory for accounts, optionally funded through the ledger."""
    from backend.services.account_service import AccountService
    from backend.services.ledger_service import LedgerService

    async def _create_account(
        username: str | None = None,
        role: Role = Role.PLAYER,
        balance: int = 0,
        bonus: int = 0,
    ):
        username = username or f"player_{uuid.uuid4().hex[:8]}"
        account = await AccountService(db_session).create_account(username, role=role)
        ledger = LedgerService(db_session)
        if balance:
            await ledger.append(account.account_id, LedgerKind.TOPUP, balance, notes="Test funding")
        if bonus:
            await ledger.append(account.account_id, LedgerKind.BONUS, bonus, notes="Test bonus")
        await db_session.refresh(account)
        return account

    return _create_account


@pytest.fixture
async def admin(account_factory):
    return await account_factory(username="admin", role=Role.ADMIN)


@pytest.fixture
async def superadmin(account_factory):
    return await account_factory(username="root", role=Role.SUPERADMIN)


@pytest.fixture
def make_token():
    """Access tokens as the auth provider would issue them."""

    def _make_token(account_id, **claims) -> str:
        payload = {"sub": str(account_id), **claims}
        return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)

    return _make_token


@pytest.fixture
def auth_headers(make_token):
    def _auth_headers(account_id, **claims) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(account_id, **claims)}"}

    return _auth_headers

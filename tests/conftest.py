import os
import sys
from datetime import date
from pathlib import Path
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).parents[1] / "src"))

from basket.core.security import GLOBAL_WRITE_SCOPE, OwnerContext, create_access_token
from basket.db.session import get_db
from basket.main import app

ENV_TEST_PATH = Path(__file__).parents[1] / ".env.test"


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key, value)


_load_env_file(ENV_TEST_PATH)

# In-memory SQLite by default so the suite runs without a local Postgres.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")

if TEST_DATABASE_URL.startswith("sqlite"):
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)

TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def setup_database():
    """Create tables for tests that need the database, and drop them after.

    This fixture is intentionally NOT autouse so pure unit tests (e.g. the
    similarity scorer) run without touching a database.
    """
    from basket.models.base import Base

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await test_engine.dispose()


@pytest.fixture
async def db_session(setup_database):
    """Provide test database session with fresh connection per test."""
    async with TestSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
def owner() -> OwnerContext:
    """A regular account without global write permission."""
    return OwnerContext(owner_id=uuid4())


@pytest.fixture
def admin_owner() -> OwnerContext:
    """An account allowed to edit shared mappings."""
    return OwnerContext(owner_id=uuid4(), can_edit_global=True)


@pytest.fixture
def other_owner() -> OwnerContext:
    """A second regular account, for isolation tests."""
    return OwnerContext(owner_id=uuid4())


@pytest.fixture
def auth_headers(owner: OwnerContext) -> dict:
    """Provide authentication headers with valid JWT token."""
    token = create_access_token(owner_id=owner.owner_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_owner: OwnerContext) -> dict:
    token = create_access_token(owner_id=admin_owner.owner_id, scopes=[GLOBAL_WRITE_SCOPE])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def add_receipt(db_session: AsyncSession):
    """Factory: store one receipt with ``(name, price, category)`` lines for an owner."""
    from basket.models.receipt import Receipt, ReceiptItem

    async def _add(owner_id, lines, receipt_date=date(2026, 1, 15), store_name="ICA Maxi"):
        receipt = Receipt(owner_id=owner_id, store_name=store_name, receipt_date=receipt_date)
        receipt.items = [
            ReceiptItem(name=name, price=price, quantity=1.0, category=category)
            for name, price, category in lines
        ]
        db_session.add(receipt)
        await db_session.commit()
        return receipt

    return _add


@pytest.fixture
def add_global_mapping(db_session: AsyncSession):
    """Factory: store one shared mapping rule."""
    from basket.models.mapping import GlobalMapping

    async def _add(original_name, mapped_name, category=None):
        row = GlobalMapping(original_name=original_name, mapped_name=mapped_name, category=category)
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)
        return row

    return _add


@pytest.fixture
async def client(db_session: AsyncSession):
    """Provide test client with database override."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

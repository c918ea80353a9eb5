import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

os.environ.setdefault("TRACING_EXPORTER_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import kiss_loyalty.models  # noqa: E402,F401
from kiss_loyalty.app import create_app  # noqa: E402
from kiss_loyalty.db.base import Base  # noqa: E402
from kiss_loyalty.db.session import get_session  # noqa: E402
from kiss_loyalty.models.account import Account  # noqa: E402
from kiss_loyalty.observability.loyalty import get_loyalty_store  # noqa: E402
from kiss_loyalty.services.loyalty import LedgerService  # noqa: E402


@pytest.fixture(autouse=True)
def reset_loyalty_store():
    get_loyalty_store().reset()
    yield
    get_loyalty_store().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_account(session_factory):
    """Create an account whose ledger fully explains its starting balance."""

    async def _make(username: str, *, points: int = 0, country_code: str | None = "KR"):
        async with session_factory() as session:
            account = Account(username=username, country_code=country_code)
            session.add(account)
            await session.flush()
            if points:
                await LedgerService(session).earn(
                    account.id,
                    points,
                    action="admin_adjustment",
                    description="Test seed",
                )
            await session.commit()
            return account.id

    return _make

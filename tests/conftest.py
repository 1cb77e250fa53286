import os

# must be in place before storefront.config reads the environment
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("JWT_ALGO", "HS256")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("PAYMENT_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("SITE_URL", "http://shop.test")
os.environ.setdefault("ENABLE_RESERVATION_SWEEPER", "false")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("REDIS_URL", "")
# the rate limit has its own tests , everything else checks out freely
os.environ.setdefault("CHECKOUT_RATE_LIMIT", "1000")

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from storefront.db.dependencies import get_session
from storefront.db.utils import configure_sqlite
from storefront.main import app
from storefront.orders.constants import gateway_circuit
from storefront.rate_limiting.utils import reset_in_memory_counters
import storefront.schema.full_schema  # noqa: F401  registers the tables on SQLModel.metadata


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    # file backed so concurrent sessions really contend for the same rows
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront_test.db'}", echo=False)
    configure_sqlite(engine)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def ac_client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.pop(get_session, None)


@pytest.fixture(autouse=True)
def reset_process_state():
    # counters and the gateway breaker live for the whole process
    reset_in_memory_counters()
    gateway_circuit.reset()
    yield
    reset_in_memory_counters()
    gateway_circuit.reset()

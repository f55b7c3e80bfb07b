"""
Pytest configuration and fixtures for catalog search tests
"""

import os
import sys
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH120

from catalog_search.database import Base  # noqa: E402
from catalog_search.main import create_app  # noqa: E402
from catalog_search.services.analytics_service import AnalyticsAggregator, LiveAnalyticsSource  # noqa: E402
from catalog_search.services.catalog import FixtureCatalogSource  # noqa: E402
from catalog_search.services.filter_engine import CatalogFilterEngine  # noqa: E402
from catalog_search.services.identity import UserInfo  # noqa: E402
from catalog_search.services.search_service import SearchService  # noqa: E402
from catalog_search.services.session_lifecycle import SessionLifecycleCoordinator  # noqa: E402
from catalog_search.services.session_registry import SessionRegistry  # noqa: E402
from catalog_search.services.stores import ClickStore, HistoryStore, QueryStore  # noqa: E402
from utils.mock_utils import FakeClock, StaticIdentityProvider  # noqa: E402

# In-memory SQLite shared through a single connection for the duration of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

TEST_TOKEN = "valid-test-token"
TEST_USER = UserInfo(id="user_001", first_name="Dana", last_name="Reyes", email="dana.reyes@example.com")


@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh database schema for every test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def history_store(session_factory) -> HistoryStore:
    return HistoryStore(session_factory)


@pytest.fixture
def query_store(session_factory) -> QueryStore:
    return QueryStore(session_factory)


@pytest.fixture
def click_store(session_factory) -> ClickStore:
    return ClickStore(session_factory)


@pytest.fixture
def fixture_catalog() -> FixtureCatalogSource:
    """The bundled 24-product fixture catalog (3 of them laptops)."""
    return FixtureCatalogSource()


@pytest.fixture
def filter_engine(fixture_catalog) -> CatalogFilterEngine:
    return CatalogFilterEngine(fixture_catalog)


@pytest.fixture
def search_service(filter_engine, history_store, query_store, click_store) -> SearchService:
    return SearchService(filter_engine, history_store, query_store, click_store)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock) -> SessionRegistry:
    return SessionRegistry(clock=clock)


@pytest.fixture
def lifecycle(registry, history_store, click_store) -> SessionLifecycleCoordinator:
    return SessionLifecycleCoordinator(registry, history_store, click_store)


@pytest.fixture
def analytics(session_factory, filter_engine, clock) -> AnalyticsAggregator:
    return AnalyticsAggregator(LiveAnalyticsSource(session_factory), filter_engine, clock=clock)


@pytest.fixture
def app(session_factory, fixture_catalog, registry):
    """Application wired to the test database, the fixture catalog and a static identity provider."""
    return create_app(
        session_factory=session_factory,
        catalog_source=fixture_catalog,
        analytics_source=LiveAnalyticsSource(session_factory),
        identity_provider=StaticIdentityProvider({TEST_TOKEN: TEST_USER}),
        session_registry=registry,
        start_scheduler=False,
        configure_logging=False,
    )


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}

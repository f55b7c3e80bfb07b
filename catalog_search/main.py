import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_search.config import settings
from catalog_search.database import AsyncSessionLocal, Base, engine
from catalog_search.exception_handlers import register_exception_handlers
from catalog_search.middleware.logging import (
    SessionHeaderMiddleware,
    StructuredLoggingMiddleware,
    setup_structured_logging,
)
from catalog_search.routes import analytics, categories, health, search
from catalog_search.scheduler import create_scheduler, schedule_session_sweep
from catalog_search.services.analytics_service import (
    AnalyticsAggregator,
    AnalyticsSource,
    FixtureAnalyticsSource,
    LiveAnalyticsSource,
)
from catalog_search.services.catalog import CatalogSource, FixtureCatalogSource, LiveCatalogSource
from catalog_search.services.filter_engine import CatalogFilterEngine
from catalog_search.services.identity import FixtureIdentityProvider, HttpIdentityProvider, IdentityProvider
from catalog_search.services.search_service import SearchService
from catalog_search.services.session_lifecycle import SessionLifecycleCoordinator
from catalog_search.services.session_registry import SessionRegistry
from catalog_search.services.stores import ClickStore, HistoryStore, QueryStore

logger = logging.getLogger(__name__)


def build_catalog_source() -> CatalogSource:
    if settings.use_fixture_catalog:
        logger.info("Catalog source: fixture data")
        return FixtureCatalogSource()
    logger.info(f"Catalog source: {settings.catalog_api_url}")
    return LiveCatalogSource(
        settings.catalog_api_url,
        token=settings.catalog_api_token,
        timeout=settings.catalog_timeout_seconds,
    )


def build_analytics_source(session_factory: async_sessionmaker[AsyncSession]) -> AnalyticsSource:
    if settings.use_fixture_analytics:
        logger.info("Analytics source: fixture data")
        return FixtureAnalyticsSource()
    return LiveAnalyticsSource(session_factory, timeout=settings.store_timeout_seconds)


def build_identity_provider() -> IdentityProvider:
    if settings.use_fixture_auth:
        logger.info("Identity provider: fixture user")
        return FixtureIdentityProvider()
    return HttpIdentityProvider(
        settings.auth_service_url,
        timeout=settings.auth_service_timeout_seconds,
        cache_seconds=settings.auth_cache_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up the application...")
    if app.state.init_db:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created (if not existing).")

    scheduler = None
    if app.state.start_scheduler:
        scheduler = create_scheduler()
        schedule_session_sweep(scheduler, app.state.lifecycle)
        scheduler.start()

    yield

    logger.info("Shutting down the application...")
    if scheduler is not None:
        scheduler.shutdown(wait=False)


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    catalog_source: Optional[CatalogSource] = None,
    analytics_source: Optional[AnalyticsSource] = None,
    identity_provider: Optional[IdentityProvider] = None,
    session_registry: Optional[SessionRegistry] = None,
    start_scheduler: Optional[bool] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Data sources are chosen here, once, from the fixture switches in
    settings. Any of them can be passed in instead.
    """
    if configure_logging:
        setup_structured_logging(settings.log_level, json_format=settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        description="Catalog search, search history and search analytics backend powered by FastAPI",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )

    factory = session_factory or AsyncSessionLocal
    timeout = settings.store_timeout_seconds
    history_store = HistoryStore(factory, timeout=timeout)
    query_store = QueryStore(factory, timeout=timeout)
    click_store = ClickStore(factory, timeout=timeout)

    registry = session_registry or SessionRegistry()
    filter_engine = CatalogFilterEngine(catalog_source or build_catalog_source())

    app.state.session_registry = registry
    app.state.identity_provider = identity_provider or build_identity_provider()
    app.state.allow_anonymous_sessions = settings.allow_anonymous_sessions
    app.state.filter_engine = filter_engine
    app.state.search_service = SearchService(filter_engine, history_store, query_store, click_store)
    app.state.analytics = AnalyticsAggregator(analytics_source or build_analytics_source(factory), filter_engine)
    app.state.lifecycle = SessionLifecycleCoordinator(registry, history_store, click_store)
    app.state.start_scheduler = settings.session_sweep_enabled if start_scheduler is None else start_scheduler
    app.state.init_db = settings.debug and session_factory is None

    # Innermost first: the session header is set before the access log is written
    app.add_middleware(SessionHeaderMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-Id", "X-Request-ID"],
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(search.router)
    app.include_router(categories.router)
    app.include_router(analytics.router)

    @app.get("/", tags=["Root"])
    async def root():
        return {"message": f"Welcome to the {settings.app_name}"}

    if settings.debug:
        logger.info(f"Running in {settings.environment} mode")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("catalog_search.main:app", host="0.0.0.0", port=8000, reload=settings.debug)

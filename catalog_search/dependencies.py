"""
Service dependencies

Services are built once in ``create_app()`` and kept on ``app.state``;
routes receive them through these providers so tests can swap them with
``app.dependency_overrides``.
"""

from fastapi import Request

from catalog_search.services.analytics_service import AnalyticsAggregator
from catalog_search.services.filter_engine import CatalogFilterEngine
from catalog_search.services.search_service import SearchService
from catalog_search.services.session_lifecycle import SessionLifecycleCoordinator
from catalog_search.services.session_registry import SessionRegistry


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def get_filter_engine(request: Request) -> CatalogFilterEngine:
    return request.app.state.filter_engine


def get_analytics(request: Request) -> AnalyticsAggregator:
    return request.app.state.analytics


def get_lifecycle(request: Request) -> SessionLifecycleCoordinator:
    return request.app.state.lifecycle


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry

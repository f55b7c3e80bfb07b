"""
Search Routes

Catalog search, suggestions, owner-scoped history and clicks, anonymous
session close, product listing and the search export used by the
reporting system.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status

from catalog_search.auth import SESSION_HEADER, Identity, require_identity, resolve_identity
from catalog_search.dependencies import get_filter_engine, get_lifecycle, get_search_service
from catalog_search.exceptions import ProductNotFoundError, ValidationError
from catalog_search.schemas.catalog import Product
from catalog_search.schemas.search import (
    ClickCreate,
    ClickView,
    DeleteResponse,
    HistoryCreate,
    HistoryEntry,
    HistoryResponse,
    OwnerClicksResponse,
    ProductClicksResponse,
    QueryExportItem,
    QueryExportResponse,
    RandomProductsResponse,
    SearchResponse,
    SessionCloseRequest,
    SessionCloseResponse,
    SuggestionsResponse,
)
from catalog_search.services.analytics_service import as_utc
from catalog_search.services.filter_engine import (
    DEFAULT_PAGE_SIZE,
    MAX_TEXT_LENGTH,
    CatalogFilterEngine,
    FilterOptions,
    parse_price_range,
)
from catalog_search.services.search_service import SearchService
from catalog_search.services.session_lifecycle import SessionLifecycleCoordinator
from catalog_search.services.session_registry import mask_owner_id
from catalog_search.services.stores import QUERY_EXPORT_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Search"])

RANDOM_PRODUCTS_DEFAULT, RANDOM_PRODUCTS_MAX = 20, 50
QUERY_EXPORT_MAX = 10000


def _session_of(identity: Optional[Identity]) -> Optional[str]:
    return identity.session_id if identity else None


# ============================================================================
# Search
# ============================================================================


@router.get("/search", response_model=SearchResponse)
async def search_products(
    text: Optional[str] = Query(None, description="Substring matched against title, description and brand"),
    price_range: Optional[str] = Query(None, alias="priceRange", description="'min-max', 'min-' or '-max'"),
    category: Optional[str] = Query(None, description="Exact category, case-insensitive"),
    condition: Optional[str] = Query(None, description="Exact condition, case-insensitive"),
    sort: Optional[str] = Query(None, description="price-asc or price-desc"),
    page: int = Query(1, description="1-based page number"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", description="Products per page (1-100)"),
    identity: Optional[Identity] = Depends(resolve_identity),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Search the catalog.

    Searches with text are recorded for analytics, and for the caller's
    history when something was found. Filter-only searches record nothing.
    """
    price_min, price_max = parse_price_range(price_range)
    options = FilterOptions(
        text=text,
        price_min=price_min,
        price_max=price_max,
        category=category,
        condition=condition,
        sort=sort,
        page=page,
        page_size=page_size,
    )
    result = await search_service.search(options, owner_id=identity.owner_id if identity else None)
    return SearchResponse(products=result.products, metadata=result.metadata, session_id=_session_of(identity))


@router.get("/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(
    text: Optional[str] = Query(None, max_length=MAX_TEXT_LENGTH),
    identity: Optional[Identity] = Depends(resolve_identity),
    search_service: SearchService = Depends(get_search_service),
):
    """Up to five suggestions: the caller's own searches first, then catalog titles."""
    suggestions = await search_service.suggestions(text, owner_id=identity.owner_id if identity else None)
    return SuggestionsResponse(suggestions=suggestions, session_id=_session_of(identity))


# ============================================================================
# History
# ============================================================================


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    identity: Identity = Depends(require_identity),
    search_service: SearchService = Depends(get_search_service),
):
    entries = await search_service.history(identity.owner_id)
    return HistoryResponse(
        history=[HistoryEntry.model_validate(e) for e in entries],
        session_id=identity.session_id,
        is_temporary=identity.is_anonymous,
    )


@router.post("/history", response_model=HistoryEntry, status_code=status.HTTP_201_CREATED)
async def save_history_entry(
    payload: HistoryCreate,
    identity: Identity = Depends(require_identity),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Save a search explicitly, e.g. a category browse under the
    "[category-browse]" placeholder. Saved entries carry no sort or page.
    """
    entry = await search_service.save_history_entry(
        identity.owner_id,
        payload.query_text,
        filters=payload.filters,
        result_ids=payload.result_ids,
    )
    return HistoryEntry.model_validate(entry)


@router.delete("/history/{entry_id}", response_model=DeleteResponse)
async def delete_history_entry(
    entry_id: int,
    identity: Identity = Depends(require_identity),
    search_service: SearchService = Depends(get_search_service),
):
    """Delete one of the caller's history entries. Other owners' entries are reported as not found."""
    await search_service.delete_history_entry(entry_id, identity.owner_id)
    return DeleteResponse(message="Search history entry deleted")


@router.delete("/history", response_model=DeleteResponse)
async def clear_history(
    identity: Identity = Depends(require_identity),
    search_service: SearchService = Depends(get_search_service),
):
    deleted = await search_service.clear_history(identity.owner_id)
    logger.info(f"Cleared {deleted} history entries for {mask_owner_id(identity.owner_id)}")
    return DeleteResponse(message="Search history cleared", deleted_count=deleted)


# ============================================================================
# Anonymous sessions
# ============================================================================


@router.post("/session/close", response_model=SessionCloseResponse)
async def close_session(
    payload: Optional[SessionCloseRequest] = None,
    x_session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
    lifecycle: SessionLifecycleCoordinator = Depends(get_lifecycle),
):
    """
    Close an anonymous session now, deleting its history and clicks.

    The session id is taken from the body, falling back to the X-Session-Id header.
    """
    session_id = (payload.session_id if payload else None) or x_session_id
    if not session_id:
        raise ValidationError("sessionId is required in the body or the X-Session-Id header", field="sessionId")

    result = await lifecycle.close_session(session_id)
    return SessionCloseResponse(
        session_id=result.session_id,
        history_deleted=result.history_deleted,
        clicks_deleted=result.clicks_deleted,
    )


# ============================================================================
# Clicks
# ============================================================================


@router.post("/clicks", response_model=ClickView, status_code=status.HTTP_201_CREATED)
async def record_click(
    payload: ClickCreate,
    identity: Optional[Identity] = Depends(resolve_identity),
    search_service: SearchService = Depends(get_search_service),
):
    click = await search_service.record_click(
        payload.product_id,
        payload.product_name,
        owner_id=identity.owner_id if identity else None,
    )
    return ClickView.model_validate(click)


@router.get("/clicks", response_model=OwnerClicksResponse)
async def get_own_clicks(
    identity: Identity = Depends(require_identity),
    search_service: SearchService = Depends(get_search_service),
):
    clicks = await search_service.clicks_for_owner(identity.owner_id)
    return OwnerClicksResponse(
        total=len(clicks),
        clicks=[ClickView.model_validate(c) for c in clicks],
        session_id=identity.session_id,
    )


@router.get("/clicks/{product_id}", response_model=ProductClicksResponse)
async def get_product_clicks(
    product_id: str,
    search_service: SearchService = Depends(get_search_service),
):
    clicks = await search_service.clicks_for_product(product_id)
    return ProductClicksResponse(
        product_id=product_id,
        total_clicks=len(clicks),
        clicks=[ClickView.model_validate(c) for c in clicks],
    )


# ============================================================================
# Products
# ============================================================================


@router.get("/products", response_model=SearchResponse)
async def list_products(
    page: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize"),
    engine: CatalogFilterEngine = Depends(get_filter_engine),
):
    """Unfiltered catalog listing. Nothing is recorded."""
    result = await engine.search(FilterOptions(page=page, page_size=page_size))
    return SearchResponse(products=result.products, metadata=result.metadata)


@router.get("/products/random", response_model=RandomProductsResponse)
async def random_products(
    limit: int = Query(RANDOM_PRODUCTS_DEFAULT, ge=1, le=RANDOM_PRODUCTS_MAX),
    engine: CatalogFilterEngine = Depends(get_filter_engine),
):
    products, total_available = await engine.random_sample(limit)
    return RandomProductsResponse(products=products, total=len(products), total_available=total_available)


@router.get("/products/{product_id}", response_model=Product)
async def get_product(
    product_id: str,
    engine: CatalogFilterEngine = Depends(get_filter_engine),
):
    """Product detail by publication id or product id."""
    product = await engine.get_product(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


# ============================================================================
# Search export
# ============================================================================


@router.get("/product-searches", response_model=QueryExportResponse)
async def export_product_searches(
    since: Optional[datetime] = Query(None, description="Only searches at or after this instant (ISO format)"),
    until: Optional[datetime] = Query(None, description="Only searches at or before this instant (ISO format)"),
    limit: int = Query(QUERY_EXPORT_LIMIT, ge=1, le=QUERY_EXPORT_MAX),
    search_service: SearchService = Depends(get_search_service),
):
    """Recorded search texts, newest first, for the reporting system."""
    since = as_utc(since) if since else None
    until = as_utc(until) if until else None
    if since and until and since > until:
        raise ValidationError("since must not be after until", field="since")

    queries = await search_service.export_queries(since, until, limit=limit)
    return QueryExportResponse(
        total=len(queries),
        since=since,
        until=until,
        data=[QueryExportItem.model_validate(q) for q in queries],
    )

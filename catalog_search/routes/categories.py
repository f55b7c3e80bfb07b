"""
Category Routes

Category listing with product counts and per-category product browsing.
Browsing is not searching: nothing here is recorded.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from catalog_search.dependencies import get_filter_engine
from catalog_search.schemas.catalog import CategoriesResponse
from catalog_search.schemas.search import SearchResponse
from catalog_search.services.filter_engine import DEFAULT_PAGE_SIZE, CatalogFilterEngine, FilterOptions

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=CategoriesResponse)
async def list_categories(engine: CatalogFilterEngine = Depends(get_filter_engine)):
    """All categories in the catalog with their product counts"""
    categories = await engine.category_counts()
    return CategoriesResponse(total=len(categories), categories=categories)


@router.get("/{category}/products", response_model=SearchResponse)
async def category_products(
    category: str,
    sort: Optional[str] = Query(None, description="price-asc or price-desc"),
    page: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize"),
    engine: CatalogFilterEngine = Depends(get_filter_engine),
):
    """Products in one category, matched case-insensitively. An unknown category is an empty page."""
    result = await engine.search(FilterOptions(category=category, sort=sort, page=page, page_size=page_size))
    return SearchResponse(products=result.products, metadata=result.metadata)

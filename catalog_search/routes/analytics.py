"""
Analytics Routes

Popularity, trends and statistics over recorded searches and clicks, plus
the flat exports pulled by the external reporting system.
"""

import logging

from fastapi import APIRouter, Depends, Query

from catalog_search.dependencies import get_analytics
from catalog_search.schemas.analytics import (
    ClickExport,
    SearchExport,
    SearchStats,
    TopProductsResponse,
    TopTermsResponse,
    TrendsResponse,
)
from catalog_search.services.analytics_service import (
    TOP_PRODUCTS_DEFAULT,
    TOP_TERMS_DEFAULT,
    TRENDS_DEFAULT_DAYS,
    AnalyticsAggregator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/top-products", response_model=TopProductsResponse)
async def get_top_products(
    limit: int = Query(TOP_PRODUCTS_DEFAULT, description="Number of products (1-20)"),
    analytics: AnalyticsAggregator = Depends(get_analytics),
):
    """
    Most clicked products with their current catalog data.

    Products that have left the catalog are not listed.
    """
    products = await analytics.top_products(limit)
    return TopProductsResponse(total=len(products), products=products)


@router.get("/top-terms", response_model=TopTermsResponse)
async def get_top_terms(
    limit: int = Query(TOP_TERMS_DEFAULT, description="Number of terms (1-50)"),
    analytics: AnalyticsAggregator = Depends(get_analytics),
):
    terms = await analytics.top_terms(limit)
    return TopTermsResponse(total=len(terms), terms=terms)


@router.get("/trends", response_model=TrendsResponse)
async def get_trends(
    days: int = Query(TRENDS_DEFAULT_DAYS, description="Days to look back (1-90)"),
    analytics: AnalyticsAggregator = Depends(get_analytics),
):
    """Searches and distinct searchers per UTC day, oldest day first."""
    trends = await analytics.trends(days)
    return TrendsResponse(days=days, total=len(trends), trends=trends)


@router.get("/stats", response_model=SearchStats)
async def get_stats(analytics: AnalyticsAggregator = Depends(get_analytics)):
    return await analytics.stats()


@router.get("/searches", response_model=list[SearchExport])
async def export_searches(analytics: AnalyticsAggregator = Depends(get_analytics)):
    return await analytics.all_searches()


@router.get("/clicks", response_model=list[ClickExport])
async def export_clicks(analytics: AnalyticsAggregator = Depends(get_analytics)):
    """Every recorded click. Owner ids are never exported."""
    return await analytics.all_clicks()

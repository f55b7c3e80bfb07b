"""
Analytics Schemas

Response models for popularity, trend, statistics and export views.
"""

import datetime as dt

from pydantic import Field

from catalog_search.schemas.catalog import CamelModel, Product


class ProductClickCount(CamelModel):
    product_id: str
    product_name: str
    click_count: int
    last_click: dt.datetime


class TopProduct(ProductClickCount):
    product: Product


class TopProductsResponse(CamelModel):
    total: int
    products: list[TopProduct]


class TermCount(CamelModel):
    term: str
    count: int
    last_searched: dt.datetime


class TopTermsResponse(CamelModel):
    total: int
    terms: list[TermCount]


class TrendPoint(CamelModel):
    date: dt.date
    search_count: int
    distinct_owner_count: int


class TrendsResponse(CamelModel):
    days: int
    total: int
    trends: list[TrendPoint]


class FacetCount(CamelModel):
    value: str
    count: int


class RecentSearch(CamelModel):
    id: int
    query_text: str
    requested_at: dt.datetime
    result_count: int


class SearchStats(CamelModel):
    total_searches: int
    counts_by_category_filter: list[FacetCount] = []
    counts_by_condition_filter: list[FacetCount] = []
    recent_searches: list[RecentSearch] = Field(default_factory=list, description="Ten most recent searches")


class SearchExport(CamelModel):
    text: str
    occurred_at: dt.datetime


class ClickExport(CamelModel):
    """Click as exported to the reporting system. Owner ids are never part of it."""

    product_id: str
    product_name: str
    occurred_at: dt.datetime

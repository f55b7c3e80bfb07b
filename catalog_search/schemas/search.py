"""
Search Schemas

Pydantic models for search, suggestions, history, click and session
requests and responses.
"""

from datetime import datetime
from typing import Literal

from pydantic import Field

from catalog_search.schemas.catalog import CamelModel, PageMetadata, Product


class SearchResponse(CamelModel):
    """Paginated catalog search result"""

    products: list[Product]
    metadata: PageMetadata
    session_id: str | None = Field(None, description="Anonymous session id, when one is in use")


class Suggestion(CamelModel):
    """Autocomplete suggestion"""

    text: str
    kind: Literal["history", "match"]
    filters: dict[str, str | float] | None = None
    id: int | None = Field(None, description="History entry id, so the client can delete it")


class SuggestionsResponse(CamelModel):
    suggestions: list[Suggestion]
    session_id: str | None = None


class HistoryEntry(CamelModel):
    id: int
    query_text: str
    filters: dict[str, str | float] = {}
    sort_field: str | None = None
    sort_direction: Literal["asc", "desc"] | None = None
    page: int
    page_size: int
    requested_at: datetime
    result_ids: list[str] = []


class HistoryResponse(CamelModel):
    history: list[HistoryEntry]
    session_id: str | None = None
    is_temporary: bool = Field(False, description="True when the history belongs to an anonymous session")


class DeleteResponse(CamelModel):
    success: bool = True
    message: str
    deleted_count: int | None = None


class HistoryCreate(CamelModel):
    """A search saved explicitly by the client, e.g. a category browse"""

    query_text: str = Field(..., min_length=1, max_length=100)
    filters: dict[str, str | float] = {}
    result_ids: list[str] = []


class ClickCreate(CamelModel):
    product_id: str = Field(..., min_length=1, max_length=255)
    product_name: str = Field(..., min_length=1, max_length=500)


class ClickView(CamelModel):
    """A click as shown to clients; never carries the owner id"""

    product_id: str
    product_name: str
    occurred_at: datetime


class OwnerClicksResponse(CamelModel):
    total: int
    clicks: list[ClickView]
    session_id: str | None = None


class ProductClicksResponse(CamelModel):
    product_id: str
    total_clicks: int
    clicks: list[ClickView]


class SessionCloseRequest(CamelModel):
    session_id: str | None = Field(None, max_length=100)


class SessionCloseResponse(CamelModel):
    success: bool = True
    session_id: str
    history_deleted: int
    clicks_deleted: int


class RandomProductsResponse(CamelModel):
    products: list[Product]
    total: int
    total_available: int


class QueryExportItem(CamelModel):
    text: str
    occurred_at: datetime


class QueryExportResponse(CamelModel):
    total: int
    since: datetime | None = None
    until: datetime | None = None
    data: list[QueryExportItem]

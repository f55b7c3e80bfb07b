from .catalog import PageMetadata, Product, ProductPage
from .search import HistoryEntry, SearchResponse, Suggestion
from .analytics import ClickExport, SearchExport, SearchStats

# Define the public API of this module
__all__ = [
    "PageMetadata",
    "Product",
    "ProductPage",
    "HistoryEntry",
    "SearchResponse",
    "Suggestion",
    "ClickExport",
    "SearchExport",
    "SearchStats",
]

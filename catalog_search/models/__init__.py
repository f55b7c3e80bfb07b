from .click import Click
from .search_history import SearchHistory
from .search_query import SearchQuery

__all__ = [
    "Click",
    "SearchHistory",
    "SearchQuery",
]

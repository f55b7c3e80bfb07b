"""
SearchQuery Model

Owner-less record of every non-empty search text, kept for analytics.
It carries no identity and is never removed by session expiry.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String

from catalog_search.database import Base


class SearchQuery(Base):
    __tablename__ = "search_queries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    text = Column(String(500), nullable=False)
    occurred_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (Index("ix_search_queries_occurred_at", "occurred_at"),)

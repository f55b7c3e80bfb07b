"""
SearchHistory Model

Per-owner search history used for suggestions, the history view and
search analytics. Owners are either authenticated user ids or derived
anonymous ids (``anonymous_<sessionId>``).
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String

from catalog_search.database import Base


class SearchHistory(Base):
    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(String(255), nullable=False, index=True)
    query_text = Column(String(500), nullable=False)
    filters = Column(JSON, nullable=False, default=dict)
    sort_field = Column(String(50), nullable=True)
    sort_direction = Column(String(4), nullable=True)
    page = Column(Integer, nullable=False, default=1)
    page_size = Column(Integer, nullable=False, default=20)
    requested_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    result_ids = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        Index("ix_search_history_owner_requested", "owner_id", "requested_at"),
        Index("ix_search_history_requested_at", "requested_at"),
    )

    def __repr__(self):
        return f"<SearchHistory(id={self.id}, owner_id='{self.owner_id}', query_text='{self.query_text}')>"

"""
Click Model

Product clicks used for popularity analytics. Clicks from anonymous
sessions carry the derived anonymous owner id and are removed with the
session; clicks from authenticated users are permanent.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String

from catalog_search.database import Base


class Click(Base):
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(String(255), nullable=False)
    product_name = Column(String(500), nullable=False)
    occurred_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    owner_id = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_clicks_product_occurred", "product_id", "occurred_at"),
        Index("ix_clicks_occurred_at", "occurred_at"),
        Index("ix_clicks_owner_occurred", "owner_id", "occurred_at"),
    )

    def __repr__(self):
        return f"<Click(id={self.id}, product_id='{self.product_id}')>"

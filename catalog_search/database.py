from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from catalog_search.config import settings
import logging

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def build_engine(url: str):
    """Create the async engine with pool settings for the current environment."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.debug)

    if settings.environment == "production":
        return create_async_engine(
            url,
            pool_size=20,
            max_overflow=50,
            pool_timeout=60,
            pool_recycle=1800,
            pool_pre_ping=True,
        )

    return create_async_engine(
        url,
        echo=settings.debug,  # Enable query logging in dev mode
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
    )


engine = build_engine(DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()

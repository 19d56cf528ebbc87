"""
Database engine and sessions for Sea Trace.

Goods, their stage records, chain transactions and the audit log all live in
one PostgreSQL database reached through asyncpg. Sessions keep loaded rows
usable after commit because the lifecycle engine commits the stage record
before calling the chain and keeps working with the same objects afterwards.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from seatrace.app.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

# Used by request handlers and by the background reconciliation loop
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """Request-scoped session; the lifecycle service commits or rolls back itself."""
    async with AsyncSessionLocal() as session:
        yield session

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from app.settings import settings

# Connecting is deferred to the first statement; startup checks reachability.
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_pre_ping=True,
)

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.engine import engine

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency returning the session factory record stores are built on.

    Stores open one short-lived session per statement group, so routes get
    the factory rather than a request-scoped session.
    """
    return async_session_factory

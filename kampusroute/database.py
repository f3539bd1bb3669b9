from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kampusroute.config import settings

# asyncpg URL; pre-ping drops connections the server closed while idle
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db():
    """One session per request: commit when the handler returns, roll back if it raises."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

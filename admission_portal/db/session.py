from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from admission_portal.config.settings import settings
from admission_portal.db.models import Base

engine = create_async_engine(
    str(settings.DATABASE_URL),
    pool_pre_ping=True,
    echo=False,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


async def init_models() -> None:
    """Create missing tables. Used at startup for SQLite deployments."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

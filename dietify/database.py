import os
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from dietify.config import settings

data_dir = settings.data_dir
db_path = os.path.join(data_dir, "dietify.db")

DATABASE_URL = settings.database_url or f"sqlite+aiosqlite:///{db_path}"

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db(bind=None):
    """Create all tables on ``bind`` (the default engine if omitted)."""
    if bind is None and DATABASE_URL.startswith("sqlite"):
        os.makedirs(data_dir, exist_ok=True)
    # Registers the tables on Base.metadata
    import dietify.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

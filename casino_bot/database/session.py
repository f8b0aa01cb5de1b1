import logging
import pathlib
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from casino_bot.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass

_engine: AsyncEngine | None = None


def _ensure_data_dir(database_url: str):
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        pathlib.Path(url.database).parent.mkdir(parents=True, exist_ok=True)


async def init_db(database_url: Optional[str] = None) -> async_sessionmaker[AsyncSession]:
    """Create the engine and guarantee the schema exists.

    Any failure propagates: the bot must not serve games without its tables.
    """
    global _engine
    url = database_url or settings.database_url
    _ensure_data_dir(url)
    _engine = create_async_engine(url, echo=False, future=True)
    session_maker = async_sessionmaker(_engine, expire_on_commit=False)

    # import models and create tables
    from . import models  # noqa: F401
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database schema ready ({_engine.dialect.name})")
    return session_maker


async def close_db():
    global _engine
    if _engine is not None:
        await _engine.dispose()
    _engine = None

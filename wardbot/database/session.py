import pathlib
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from wardbot.config import settings


class Base(DeclarativeBase):
    pass

_engine: AsyncEngine | None = None
_async_session: async_sessionmaker[AsyncSession] | None = None


def _ensure_data_dir():
    if settings.database_url.startswith("sqlite") and ":memory:" not in settings.database_url:
        pathlib.Path("data").mkdir(parents=True, exist_ok=True)


async def init_db(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    global _engine, _async_session
    url = url or settings.database_url
    if url == settings.database_url:
        _ensure_data_dir()
    _engine = create_async_engine(url, echo=False)
    _async_session = async_sessionmaker(_engine, expire_on_commit=False)

    # import models and create tables
    from . import models  # noqa: F401
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return _async_session


async def close_db():
    global _engine, _async_session
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session = None


def get_session() -> async_sessionmaker[AsyncSession]:
    assert _async_session is not None, "DB is not initialized"
    return _async_session

# tutorslot/storage/db.py
from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tutorslot.config import settings

class Base(DeclarativeBase):
    pass

def make_engine(url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    return create_async_engine(
        url or settings.db_url,
        future=True,
        pool_pre_ping=True,
        echo=settings.db_echo if echo is None else echo,
    )

def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

engine = make_engine()

SessionLocal: async_sessionmaker[AsyncSession] = make_sessionmaker(engine)

async def init_db(bind: AsyncEngine | None = None) -> None:
    # импорт моделей регистрирует таблицы в Base.metadata
    from tutorslot.storage import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

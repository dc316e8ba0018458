from pathlib import Path
from typing import AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import settings

AUDIT_DB_NAME = "eventgallery.db"


class Base(DeclarativeBase):
    pass


def build_engine(path: Path) -> AsyncEngine:
    """Async SQLite engine for the audit log; every connection waits up to 5s on a busy database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 5},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _pragmas(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


db_path = Path(settings.config_root) / AUDIT_DB_NAME
engine = build_engine(db_path)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def create_schema(target: AsyncEngine):
    from . import models  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("PRAGMA journal_mode=WAL"))


async def init_db():
    """Create the audit table on startup; the directory is created on demand."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    await create_schema(engine)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session

from __future__ import annotations
import os
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, AsyncContextManager

from sqlalchemy import MetaData, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
)

Gated = Callable[[], AsyncContextManager[None]]


def _normalize_async_url(url: str) -> str:
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        # heroku / railway style urls
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def _ensure_sqlite_dir(db_url: str) -> None:
    path = make_url(db_url).database
    if path and path != ":memory:":
        folder = os.path.dirname(os.path.abspath(path))
        os.makedirs(folder, exist_ok=True)


@asynccontextmanager
async def _gated(sem: asyncio.Semaphore):
    await sem.acquire()
    try:
        yield
    finally:
        sem.release()


class Database:
    """One async engine, its session factory and a concurrency gate.

    Every write in the repositories runs as
    ``async with db.gated(): async with session.begin(): ...`` so a single
    record is only ever touched by one transaction at a time.
    """

    def __init__(self, database_url: str) -> None:
        self.url = _normalize_async_url(database_url)
        kw = dict(future=True, pool_pre_ping=True)

        pool_size = None
        if self.url.startswith("postgresql+asyncpg://"):
            pool_size = int(os.getenv("DB_POOL_SIZE", "10"))
            kw.update(
                pool_size=pool_size,
                max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
                pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
            )

        if self.url.startswith("sqlite+aiosqlite://"):
            _ensure_sqlite_dir(self.url)

        self.engine: AsyncEngine = create_async_engine(self.url, **kw)

        if self.url.startswith("sqlite+aiosqlite://"):
            @event.listens_for(self.engine.sync_engine, "connect")
            def _sqlite_pragmas(dbapi_connection, _):
                cur = dbapi_connection.cursor()
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA busy_timeout=5000;")
                cur.execute("PRAGMA synchronous=NORMAL;")
                cur.close()

        self.sessionmaker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        if pool_size is None:
            gate_limit = int(os.getenv("DB_GATE_LIMIT", "10"))
        else:
            gate_limit = int(os.getenv("DB_GATE_LIMIT", pool_size))
        self._gate = asyncio.Semaphore(max(1, gate_limit))

    def gated(self):
        return _gated(self._gate)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            yield session

    async def create_schema(self, metadata: MetaData) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()

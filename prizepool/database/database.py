from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from prizepool.config import Config
from prizepool.database.models import Base
from prizepool.utils.logger import setup_logger

# Seconds a SQLite connection waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 30


def to_async_url(database_url: str) -> str:
    """Plain sqlite URLs are served through the aiosqlite driver."""
    if database_url.startswith('sqlite:///'):
        return database_url.replace('sqlite:///', 'sqlite+aiosqlite:///', 1)
    return database_url


class Database:
    """Async engine and session factory for the settlement database."""

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = to_async_url(database_url or Config.DATABASE_URL)
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Connect and create any missing settlement tables"""
        self.logger.info(f"Opening settlement database {self.database_url.split('://')[0]}")

        connect_args = {}
        if self.database_url.startswith('sqlite+aiosqlite'):
            connect_args['timeout'] = SQLITE_BUSY_TIMEOUT

        self.engine = create_async_engine(self.database_url, echo=Config.DEBUG, connect_args=connect_args)
        self.async_session = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info(f"Settlement tables ready: {', '.join(sorted(Base.metadata.tables))}")

    @property
    def session_factory(self):
        """Session factory handed to services and ledger adapters"""
        if self.async_session is None:
            raise RuntimeError("Database.initialize() has not been called")
        return self.async_session

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Read-only session; nothing is committed"""
        async with self.session_factory() as session:
            yield session

    async def close(self):
        """Dispose of the engine and its pooled connections"""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

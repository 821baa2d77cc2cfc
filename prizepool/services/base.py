"""
Base service class for the settlement pipeline.

Provides async database session management and bounded retry of transient
ledger failures for all service layer operations.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession

from prizepool.config import Config
from prizepool.utils.settlement_exceptions import TransientLedgerError
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar('T')

class BaseService:
    """Base class for all services with async database session management."""

    def __init__(self, session_factory=None, retry_delay: Optional[float] = None):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class, or None
                for services that only talk to ledgers
            retry_delay: Base backoff delay in seconds between transient retries
        """
        self.session_factory = session_factory
        self.retry_delay = Config.TX_RETRY_DELAY if retry_delay is None else retry_delay

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        if self.session_factory is None:
            raise RuntimeError(f"{type(self).__name__} was created without a session factory")
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(self, func: Callable[[], Awaitable[T]], max_retries: int = 3) -> T:
        """
        Execute a read with automatic retry on transient ledger errors.

        Only use this for calls that are safe to repeat. Mutating ledger calls
        go back through their idempotency gate instead.
        """
        for attempt in range(max_retries):
            try:
                return await func()
            except TransientLedgerError as e:
                if attempt == max_retries - 1:
                    raise
                logger.warning(f"Retry attempt {attempt + 1} for {getattr(func, '__name__', func)}: {e}")
                await self.backoff(attempt)

    async def backoff(self, attempt: int):
        """Sleep before the next attempt, doubling each time."""
        if self.retry_delay > 0:
            await asyncio.sleep(self.retry_delay * (2 ** attempt))

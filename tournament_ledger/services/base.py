"""
Base service class for the tournament ledger.

Provides async database session management and bounded retry logic for all
service layer operations.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Any, Optional
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tournament_ledger.config import Config
from tournament_ledger.utils.ledger_exceptions import ConcurrentUpdateConflictError, TransactionError

logger = logging.getLogger(__name__)

# Store conflicts worth another attempt; domain errors are never retried
RETRYABLE_ERRORS = (OperationalError, ConcurrentUpdateConflictError)

class BaseService:
    """Base class for all services with async database session management."""
    
    def __init__(self, session_factory, on_batch_failure: Optional[Callable[[str, Exception], Any]] = None):
        """
        Initialize base service with session factory.
        
        Args:
            session_factory: Async session factory from Database class
            on_batch_failure: Optional operator callback invoked as
                (operation_name, error) when a batch exhausts its retries
        """
        self.session_factory = session_factory
        self.on_batch_failure = on_batch_failure
    
    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
    
    async def execute_with_retry(self, func: Callable, max_retries: int = 3) -> Any:
        """Execute a function with automatic retry on store conflicts."""
        for attempt in range(max_retries):
            try:
                return await func()
            except RETRYABLE_ERRORS as e:
                if attempt == max_retries - 1:
                    raise
                logger.warning(f"Retry attempt {attempt + 1} for {func.__name__}: {e}")
                await asyncio.sleep(0.1 * (2 ** attempt))  # Exponential backoff
    
    async def run_batch(self, operation: str, func: Callable, max_retries: Optional[int] = None) -> Any:
        """
        Run an all-or-nothing batch with bounded retries.
        
        On exhausted retries the operator callback is notified and a
        TransactionError is raised; the batch stays safe to re-run.
        """
        attempts = max_retries or Config.BATCH_MAX_RETRIES
        try:
            return await self.execute_with_retry(func, max_retries=attempts)
        except RETRYABLE_ERRORS as e:
            logger.error(f"Batch '{operation}' failed after {attempts} attempts: {e}")
            if self.on_batch_failure is not None:
                try:
                    result = self.on_batch_failure(operation, e)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception as notify_error:
                    logger.error(f"Operator notification for '{operation}' failed: {notify_error}")
            raise TransactionError(operation, attempts) from e

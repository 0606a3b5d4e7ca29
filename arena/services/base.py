"""
Base service class for the arena services.

Provides async database session management for the service layer
operations.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from arena.utils.exceptions import StoreError


class BaseService:
    """Base class for all services with async database session management."""

    def __init__(self, session_factory):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def get_session(self, operation: str = "service operation",
                          session: Optional[AsyncSession] = None) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional scope for async database operations.

        A caller-provided session is used as-is and left for the caller to
        commit. Driver failures surface as StoreError.
        """
        try:
            if session is not None:
                yield session
                return

            session = self.session_factory()
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()
        except SQLAlchemyError as e:
            raise StoreError(operation, str(e)) from e

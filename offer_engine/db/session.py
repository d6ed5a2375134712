"""Database session management"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from offer_engine.db.base import async_session

async_session_factory = async_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session.

    The negotiation service commits its own units of work; whatever is still
    open when the request ends (an error, a deadline cancellation) is rolled
    back here.
    """
    async with async_session() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()

import logging
from contextlib import asynccontextmanager
from typing import NoReturn

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from listing_chat.core.config import settings

from .exceptions import DatabaseError, ServiceError, TransientStoreError

logger = logging.getLogger(__name__)


def is_transient(error: Exception) -> bool:
    """True for store failures that may succeed on a later attempt."""
    if isinstance(error, (OperationalError, PoolTimeoutError)):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


def store_retrying() -> AsyncRetrying:
    """Bounded exponential backoff for TransientStoreError only."""
    return AsyncRetrying(
        stop=stop_after_attempt(settings.STORE_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=settings.STORE_RETRY_BACKOFF_SECONDS,
            max=settings.STORE_RETRY_BACKOFF_MAX_SECONDS,
        ),
        retry=retry_if_exception_type(TransientStoreError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def raise_store_error(
    session: AsyncSession, error: SQLAlchemyError, action: str
) -> NoReturn:
    """Rolls back and re-raises a SQLAlchemy error as a service error."""
    await session.rollback()
    if is_transient(error):
        logger.warning(f"Transient store error while trying to {action}: {error}")
        raise TransientStoreError() from error
    logger.error(f"Database error while trying to {action}: {error}", exc_info=True)
    raise DatabaseError(f"Failed to {action} due to a database error.") from error


@asynccontextmanager
async def unit_of_work(session: AsyncSession, action: str):
    """
    Runs one atomic store operation on the session.

    Commits on success. On failure the transaction is rolled back; SQLAlchemy
    errors become TransientStoreError or DatabaseError, service errors pass
    through unchanged.
    """
    try:
        yield
        await session.commit()
    except ServiceError:
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await raise_store_error(session, e, action)
    except BaseException:
        await session.rollback()
        raise

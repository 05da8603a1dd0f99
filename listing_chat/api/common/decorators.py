import logging
import time
from functools import wraps

from fastapi import HTTPException, status

from listing_chat.api.common.exceptions import handle_service_error
from listing_chat.services.exceptions import (
    BusinessRuleError,
    ConflictError,
    ConversationNotFoundError,
    NotAuthorizedError,
    ServiceError,
)

logger = logging.getLogger(__name__)

# Expected outcomes of a valid request; logged without a traceback
CLIENT_SIDE_ERRORS = (
    BusinessRuleError,
    ConflictError,
    ConversationNotFoundError,
    NotAuthorizedError,
)


def log_route_call(func):
    """
    Logs each route call with its duration.
    Only parameter names are logged; values carry message bodies and users.
    """
    route_logger = logging.getLogger(func.__module__)

    @wraps(func)
    async def wrapper(*args, **kwargs):
        route_logger.info(f"{func.__name__} called with {sorted(kwargs)}")
        started = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            route_logger.info(
                f"{func.__name__} failed after {_elapsed_ms(started)}ms: "
                f"{type(e).__name__}"
            )
            raise
        route_logger.info(f"{func.__name__} done in {_elapsed_ms(started)}ms")
        return result

    return wrapper


def _elapsed_ms(started: float) -> int:
    return round((time.perf_counter() - started) * 1000)


def handle_route_errors(func):
    """
    Translates service errors raised by a route into HTTP responses.
    Anything unexpected becomes a generic 500.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except CLIENT_SIDE_ERRORS as e:
            logger.info(f"{func.__name__} rejected: {e}")
            handle_service_error(e)
        except ServiceError as e:
            logger.error(f"{func.__name__} failed in the service layer: {e}", exc_info=True)
            handle_service_error(e)
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An unexpected server error occurred.",
            )

    return wrapper

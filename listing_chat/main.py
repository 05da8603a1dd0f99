import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from listing_chat.api.routes import conversations
from listing_chat.auth_config import auth_backend, fastapi_users
from listing_chat.db import check_database_health, engine
from listing_chat.schemas.user import UserCreate, UserRead, UserUpdate
from listing_chat.services.migration_service import run_migrations
from listing_chat.services.provider import ServiceProvider

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting application...")
    try:
        await run_migrations()
        await check_database_health()
        logger.info("Database health check passed - application ready")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        logger.error("Application startup aborted due to database issues")
        raise

    yield

    logger.info("Application shutting down...")
    ServiceProvider.clear()
    await engine.dispose()


app = FastAPI(title="Listing chat", lifespan=lifespan)


app.include_router(
    fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"]
)
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_reset_password_router(),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_verify_router(UserRead),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
)
app.include_router(conversations.conversations_router_instance)


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    try:
        await check_database_health(skip_table_check=True)
    except Exception:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "timestamp": _now_iso()},
        )
    return {"status": "healthy", "timestamp": _now_iso()}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

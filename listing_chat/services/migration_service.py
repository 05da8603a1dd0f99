import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import make_url

from listing_chat.core.config import settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Alembic runs on a synchronous engine
_SYNC_DRIVERS = {
    "sqlite+aiosqlite": "sqlite",
    "postgresql+asyncpg": "postgresql+psycopg2",
}


def sync_database_url(database_url: str) -> str:
    url = make_url(database_url)
    driver = _SYNC_DRIVERS.get(url.drivername)
    if driver is not None:
        url = url.set(drivername=driver)
    return url.render_as_string(hide_password=False)


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite") or url.database in (None, "", ":memory:"):
        return
    db_dir = Path(url.database).parent
    if not db_dir.exists():
        logger.info(f"Creating database directory: {db_dir}")
        db_dir.mkdir(parents=True, exist_ok=True)


def build_alembic_config(database_url: str | None = None) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option(
        "sqlalchemy.url", sync_database_url(database_url or settings.DATABASE_URL)
    )
    # Keep the application's logging setup intact
    config.attributes["configure_logger"] = False
    return config


async def run_migrations(database_url: str | None = None) -> None:
    """Upgrades the database to the latest revision."""
    database_url = database_url or settings.DATABASE_URL
    logger.info("Running database migrations...")
    try:
        _ensure_sqlite_directory(database_url)
        config = build_alembic_config(database_url)
        await asyncio.to_thread(command.upgrade, config, "head")
    except Exception as e:
        logger.error(f"Migration failed: {e}", exc_info=True)
        raise RuntimeError("Database migration failed") from e
    logger.info("Migrations completed successfully")

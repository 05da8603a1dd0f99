from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context
from listing_chat.models import metadata
from listing_chat.services.migration_service import sync_database_url

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Programmatic runs from the app keep the app's logging configuration
if config.config_file_name is not None and config.attributes.get(
    "configure_logger", True
):
    fileConfig(config.config_file_name)

# Fall back to the application settings when no URL was set on the config
if not config.get_main_option("sqlalchemy.url"):
    from listing_chat.core.config import settings

    config.set_main_option("sqlalchemy.url", sync_database_url(settings.DATABASE_URL))

# Listing tables belong to the marketplace and are not migrated here
target_metadata = metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

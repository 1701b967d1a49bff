"""
Alembic environment for the food ordering schema.

The database URL always comes from application settings (APP_DATABASE_URL)
so migrations and the API share one source of truth; the value in
alembic.ini is only a placeholder. Online migrations run over asyncpg with
a NullPool engine, one transaction per revision.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from src.core.config import get_settings
from src.core.logging import get_logger
from src.database.connection import _convert_database_url_to_async
from src.database.models import Base  # registers every model on Base.metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = get_logger(__name__)

target_metadata = Base.metadata

database_url = _convert_database_url_to_async(get_settings().database_url)
config.set_main_option("sqlalchemy.url", database_url)

COMPARE_OPTIONS = {
    "compare_type": True,
    "compare_server_default": True,
}


def run_migrations_offline() -> None:
    """Emit migration SQL to the script output without connecting."""
    logger.info("Generating migration SQL (offline)")

    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        transaction_per_migration=True,
        **COMPARE_OPTIONS,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """
    Apply pending revisions against the live database.

    Raises:
        ValueError: If alembic.ini has no [alembic] section
    """
    section = config.get_section(config.config_ini_section)
    if not section:
        raise ValueError("Alembic configuration is missing")

    connectable = async_engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
    except Exception as e:
        logger.error(
            "Migration failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await connectable.dispose()

    logger.info("Migrations applied")


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())

"""Alembic environment configuration.

URL resolution: DATABASE_URL_MIGRATIONS > DATABASE_URL > alembic.ini.
Each revision runs in its own transaction so a failed backfill never
leaves a partially migrated revision behind.
"""

import logging
from logging.config import fileConfig

import sqlalchemy as sa
from sqlalchemy import pool

from alembic import context
from authproviders.helpers import user_store  # noqa: F401  (registers models)
from authproviders.helpers.auth_db import Base, get_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

try:
    database_url = get_database_url(migrations=True)
except ValueError:
    database_url = config.get_main_option("sqlalchemy.url")

if not database_url:
    raise ValueError(
        "Database URL not configured. "
        "Set DATABASE_URL_MIGRATIONS or DATABASE_URL environment variable, "
        "or configure sqlalchemy.url in alembic.ini."
    )

config.set_main_option("sqlalchemy.url", database_url)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (SQL generation, no DB connection)."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        transaction_per_migration=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode (direct DB connection)."""
    connectable = sa.create_engine(database_url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            transaction_per_migration=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        try:
            with context.begin_transaction():
                context.run_migrations()
        except Exception:
            logger.error("Migration failed, rolling back")
            raise


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

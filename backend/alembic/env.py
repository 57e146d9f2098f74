"""Alembic migration environment."""

from logging.config import fileConfig

from alembic import context

from core.config import DATABASE_URL
from core.database import Base, build_engine
import models  # noqa: F401  (registers all tables on Base.metadata)

config = context.config

if config.config_file_name is not None:
    # Keep application loggers enabled when migrations run in-process (tests)
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata

# An explicit sqlalchemy.url (set by the test suite) wins over the environment
database_url = config.get_main_option("sqlalchemy.url") or DATABASE_URL


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to stdout."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against the configured database."""
    connectable = build_engine(database_url)

    try:
        with connectable.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata)

            with context.begin_transaction():
                context.run_migrations()
    finally:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

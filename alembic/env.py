"""
Alembic environment for the furnilink schema.

Migrations run synchronously, so the async drivers in DATABASE_URL are
swapped for their sync counterparts (psycopg serves both modes; SQLite
drops aiosqlite).
"""

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

from furnilink.database import Base, database_url
from furnilink import models  # noqa: F401  (registers every table on Base.metadata)

config = context.config
config.set_main_option("sqlalchemy.url", database_url.replace("sqlite+aiosqlite", "sqlite"))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_offline() -> None:
    """Emit the marketplace DDL as SQL script output."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()

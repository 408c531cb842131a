"""Alembic environment for the bookings schema.

Migrations are plain SQL files under migrations/sql executed by the
revision scripts; there is no SQLAlchemy metadata to autogenerate from.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from migrations.env_helpers import get_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Each revision commits on its own so a failed constraint migration leaves
# the earlier schema in place.
_COMMON_OPTIONS = {"target_metadata": None, "transaction_per_migration": True}


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    context.configure(
        url=get_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_COMMON_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations against DATABASE_URL."""
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = get_database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with engine.connect() as connection:
        context.configure(connection=connection, **_COMMON_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

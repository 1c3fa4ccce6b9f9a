"""Alembic environment configuration.

Uses psycopg v3 sync engines for migrations. The primary database URL and
any extra shard URLs come from application settings; online migrations run
against every shard in turn so the schema stays identical across shards.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from storefront.config import settings
from storefront.storage.orm import Base

config = context.config

config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _shard_urls() -> list[str]:
    # psycopg v3 URLs work for both the async app and sync migrations.
    return [settings.database_url, *settings.shard_database_urls]


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode against the primary shard only.

    Configures the context with just a URL so that
    calls to context.execute() emit SQL to the script output.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode on every configured shard."""
    for url in _shard_urls():
        connectable = create_engine(url, poolclass=pool.NullPool)
        with connectable.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata)

            with context.begin_transaction():
                context.run_migrations()
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

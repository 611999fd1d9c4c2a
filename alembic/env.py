import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from streampass.core.config import settings
from streampass.db.base import Base  # registers every model on Base.metadata

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)

# DATABASE_URL_OVERRIDE wins when set
DATABASE_URL = settings.ASYNC_DATABASE_URL
config.set_main_option("sqlalchemy.url", DATABASE_URL)

CONFIGURE = dict(target_metadata=Base.metadata, compare_type=True)


def run_migrations_offline() -> None:
    """Emit the SQL script without a database connection."""
    context.configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"}, **CONFIGURE)
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(connection=connection, **CONFIGURE)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

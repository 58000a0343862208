"""
Alembic environment for the billing schema.

The connection URL comes from application settings (DATABASE_URL, or the
Supabase direct connection derived from SUPABASE_PASSWORD). Only tables in
the public schema are compared; Supabase manages auth, storage and the rest,
including its own auth.users, which is unrelated to public.users.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from subscription_billing.infrastructure.db import models  # noqa: F401
from subscription_billing.infrastructure.db.database import resolve_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

SUPABASE_SCHEMAS = frozenset(
    {"auth", "storage", "realtime", "extensions", "graphql", "graphql_public"}
)


def include_object(object, name, type_, reflected, compare_to):
    if type_ == "table" and getattr(object, "schema", None) in SUPABASE_SCHEMAS:
        return False
    return True


def _options(**kwargs) -> dict:
    return {
        "target_metadata": target_metadata,
        "include_object": include_object,
        "compare_type": True,
        **kwargs,
    }


def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    context.configure(
        **_options(
            url=resolve_database_url(),
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
        )
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(**_options(connection=connection, compare_server_default=True))
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Migrate over a throwaway async engine (no pooling)."""
    engine = create_async_engine(resolve_database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

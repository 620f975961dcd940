from __future__ import annotations

import asyncio
import os
import sys
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

PROJECT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_DIR not in sys.path:
    sys.path.insert(0, PROJECT_DIR)

from app.models import Base  # noqa: E402
from app.models import (  # noqa: E402,F401
    activity_log,
    branch,
    company,
    contract,
    visit,
)
from core.settings import get_settings  # noqa: E402


config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Companies, branches, contracts with their service batches, visits and the
# activity log.
target_metadata = Base.metadata


def _configure(**kwargs: Any) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL for the planning schema without a database connection."""

    _configure(
        url=get_settings().sqlalchemy_database_uri_async,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )


def _run_on_connection(connection: Connection) -> None:
    _configure(connection=connection)


async def run_migrations_online() -> None:
    engine = create_async_engine(
        get_settings().sqlalchemy_database_uri_async, poolclass=pool.NullPool
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())

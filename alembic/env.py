"""
============================================================
CRC CARD — alembic/env.py (Alembic environment)
============================================================
Responsibilities:
  - Runtime of Alembic migrations (online/offline).
  - Build the SQLAlchemy URL (oracle+oracledb) from ORACLE_* env vars.

Collaborators:
  - Alembic (context, config)
  - SQLAlchemy Engine (engine_from_config)
  - Oracle (python-oracledb driver)

Policy:
  - Migrations are raw SQL (no ORM metadata); autogenerate is disabled.
  - The password comes from ORACLE_PASSWORD (migration jobs run with a
    secret injected by the deployment, never from the repo).
============================================================
"""

import os
from logging.config import fileConfig
from urllib.parse import quote_plus

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = None


def get_url() -> str:
    """
    oracle+oracledb URL from ORACLE_USER, ORACLE_PASSWORD and ORACLE_DSN
    (Easy Connect host:port/service). ALEMBIC_DATABASE_URL overrides it.
    """
    explicit = os.environ.get("ALEMBIC_DATABASE_URL")
    if explicit:
        return explicit
    user = os.environ.get("ORACLE_USER", "orabridge")
    password = quote_plus(os.environ.get("ORACLE_PASSWORD", ""))
    dsn = os.environ.get("ORACLE_DSN", "localhost:1521/FREEPDB1")
    host_port, _, service = dsn.partition("/")
    return f"oracle+oracledb://{user}:{password}@{host_port}/?service_name={service}"


def _configure_context(connection: Connection | None = None) -> None:
    common_kwargs = dict(
        target_metadata=target_metadata,
        include_schemas=False,
        version_table="alembic_version",
    )
    if connection is None:
        context.configure(
            url=get_url(),
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
            **common_kwargs,
        )
    else:
        context.configure(connection=connection, **common_kwargs)


def run_migrations_offline() -> None:
    _configure_context(connection=None)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        _configure_context(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

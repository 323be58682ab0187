"""
LeaveCore - Alembic Environment Configuration

This module configures Alembic to:
1. Use the database connection from leavecore config
2. Import all models for autogenerate support
3. Handle SQL Server specific migrations (schema creation)
"""

import logging
from logging.config import fileConfig

import sqlalchemy as sa
from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# Import config and models; importing the package registers every table
from leavecore.config import get_settings
from leavecore.models import Base

# This is the Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Set target metadata for autogenerate support
target_metadata = Base.metadata

# Get database URL from leavecore config
settings = get_settings()

# ConfigParser treats '%' as interpolation, so escape it
config.set_main_option("sqlalchemy.url", settings.database_url.replace('%', '%%'))


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    This configures the context with just a URL and not an Engine.
    By skipping the Engine creation we don't even need a DBAPI to be
    available. Calls to context.execute() emit SQL to the script output.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
        include_schemas=True,
        version_table_schema=settings.db_schema,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """
    Run migrations in 'online' mode.

    In this scenario we need to create an Engine and associate a
    connection with the context.
    """
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        # Make sure a configured schema exists before Alembic puts its
        # version table in it; fall back to the default schema otherwise.
        version_table_schema = settings.db_schema
        if version_table_schema and connection.dialect.name == "mssql":
            try:
                connection.execute(
                    sa.text("IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = :s) EXEC('CREATE SCHEMA %s')" % version_table_schema),
                    {"s": version_table_schema},
                )
            except sa.exc.DBAPIError:
                logging.getLogger("alembic.env").warning(
                    "Unable to create/use schema '%s' for alembic_version; falling back to default schema",
                    version_table_schema,
                )
                version_table_schema = None

        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            include_schemas=True,
            version_table_schema=version_table_schema,
            # SQLite can't ALTER most things in place
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

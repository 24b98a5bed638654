from logging.config import fileConfig
import os
import re
import sys

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

# backend/alembic/env.py -> make backend/ importable for the wandernest package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from wandernest.database import Base  # noqa: E402
# Import all models to ensure they are registered with Base.metadata
from wandernest.models import (  # noqa: E402,F401
    RequestSelection,
    Review,
    Student,
    StudentAvailability,
    TouristRequest,
)

target_metadata = Base.metadata


def _env_db_url() -> str | None:
    return os.getenv("DB_URL") or os.getenv("SQLALCHEMY_DATABASE_URL")


def _masked(url: str) -> str:
    return re.sub(r"(postgres(?:ql)?\+?[^:]*://[^:/]+:)([^@]+)(@)", r"\1****\3", url or "")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    url = _env_db_url() or config.get_main_option("sqlalchemy.url")
    print(f"[alembic] Using DB URL (offline): {_masked(url)}")

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=str(url or "").startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    section = config.get_section(config.config_ini_section, {}) or {}
    env_url = _env_db_url()
    if env_url:
        section["sqlalchemy.url"] = env_url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            # SQLite cannot ALTER most constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

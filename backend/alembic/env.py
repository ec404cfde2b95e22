import os, sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import create_engine, pool

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

# importing config also loads hivewatch/.env
from hivewatch.config import load_settings
from hivewatch.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def sync_url() -> str:
    """Application URL rewritten for a synchronous driver."""
    url = os.getenv("ALEMBIC_DATABASE_URL") or load_settings().database_url
    return url.replace("+asyncpg", "+psycopg").replace("+aiosqlite", "")


def _configure(**kwargs):
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_migrations_offline():
    _configure(url=sync_url(), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    url = sync_url()
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        # SQLite cannot ALTER most constraints in place
        _configure(connection=connection, render_as_batch=url.startswith("sqlite"))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

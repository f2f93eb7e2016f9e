from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

from luckydraw.db.engine import DEFAULT_SQLITE_URL, make_engine
from luckydraw.models import Base  # noqa: F401 - import registers every table

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# DB_URL (via .env) wins over alembic.ini.
DATABASE_URL = DEFAULT_SQLITE_URL
# ConfigParser interpolation treats '%' specially.
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))

COMPARE_OPTS = {"compare_type": True, "compare_server_default": True}


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""

    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def _configure_online(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        # SQLite cannot ALTER constraints in place.
        render_as_batch=connection.dialect.name == "sqlite",
        **COMPARE_OPTS,
    )


def run_migrations_online() -> None:
    """Apply migrations through a live connection."""

    engine = make_engine(database_url=DATABASE_URL)
    try:
        with engine.connect() as connection:
            _configure_online(connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

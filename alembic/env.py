import logging
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy.engine import make_url

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from config import get_settings  # noqa: E402
from database import Base, create_db_engine  # noqa: E402
import models  # noqa: E402,F401

logger = logging.getLogger("alembic.env")

alembic_config = context.config
if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

database_url = get_settings().database_url
alembic_config.set_main_option("sqlalchemy.url", database_url)


def _configure(**kwargs) -> None:
    # SQLite cannot ALTER most constraints in place
    context.configure(
        target_metadata=Base.metadata,
        render_as_batch=make_url(database_url).get_backend_name() == "sqlite",
        **kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_offline() -> None:
    _configure(
        url=database_url, literal_binds=True, dialect_opts={"paramstyle": "named"}
    )


def migrate_online() -> None:
    engine = create_db_engine(database_url)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
    finally:
        engine.dispose()


offline = context.is_offline_mode()
logger.info(
    f"migrations_run: url={make_url(database_url).render_as_string(hide_password=True)} "
    f"offline={offline}"
)
if offline:
    migrate_offline()
else:
    migrate_online()

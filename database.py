import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import get_settings

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    from sqlalchemy import create_engine

    eng = create_engine(settings.database_url, connect_args=connect_args)
    if settings.database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def _alembic_config():
    from alembic.config import Config

    cfg = Config(str(BASE_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BASE_DIR / "alembic"))
    return cfg


def current_revision(eng: Engine = engine) -> Optional[str]:
    from alembic.migration import MigrationContext

    with eng.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def head_revision() -> Optional[str]:
    from alembic.script import ScriptDirectory

    return ScriptDirectory.from_config(_alembic_config()).get_current_head()


def ensure_schema(auto_migrate: bool, eng: Engine = engine) -> None:
    """Bring the database to the latest migration or refuse to serve.

    With ``auto_migrate`` the schema is upgraded in place. Otherwise the
    stored revision must already be the head revision.
    """
    head = head_revision()
    current = current_revision(eng)
    if current == head:
        logger.info(f"schema_check: revision={current} up_to_date=True")
        return
    if not auto_migrate:
        raise RuntimeError(
            f"Database schema is at revision {current!r}, expected {head!r}. "
            "Run `alembic upgrade head` before starting the service."
        )

    from alembic import command

    logger.info(f"schema_upgrade: from={current} to={head}")
    with eng.begin() as connection:
        cfg = _alembic_config()
        cfg.attributes["connection"] = connection
        command.upgrade(cfg, "head")

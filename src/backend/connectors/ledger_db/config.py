from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///./data/ledger.db"


@dataclass(frozen=True)
class LedgerDbConfig:
    database_url: str
    echo: bool = False


def get_ledger_db_config() -> LedgerDbConfig:
    """
    Load ledger database configuration from environment variables:
      LEDGER_DATABASE_URL (default sqlite:///./data/ledger.db), LEDGER_DATABASE_ECHO
    """
    url = os.getenv("LEDGER_DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL
    echo = os.getenv("LEDGER_DATABASE_ECHO", "").strip().lower() in ("1", "true", "yes", "on")
    return LedgerDbConfig(database_url=url, echo=echo)


def create_ledger_engine(config: LedgerDbConfig | None = None) -> Engine:
    cfg = config or get_ledger_db_config()
    kwargs: dict = {}
    if cfg.database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_sqlite_memory(cfg.database_url):
            # One shared connection, otherwise each pooled connection sees its own empty database.
            kwargs["poolclass"] = StaticPool
        else:
            _ensure_sqlite_parent_dir(cfg.database_url)
    engine = create_engine(cfg.database_url, echo=cfg.echo, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_sqlite_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def _ensure_sqlite_parent_dir(url: str) -> None:
    database = make_url(url).database
    if database:
        Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)

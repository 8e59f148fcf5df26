"""Ledger database connector (SQLAlchemy engine, ORM schema and repository functions)."""

from .config import LedgerDbConfig, create_ledger_engine, create_session_factory, get_ledger_db_config
from .repository import RuleStoreError
from .schema import Base, create_schema

__all__ = [
    "Base",
    "LedgerDbConfig",
    "RuleStoreError",
    "create_ledger_engine",
    "create_schema",
    "create_session_factory",
    "get_ledger_db_config",
]

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class AccountRow(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)


class TagRow(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    posted_date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)  # negative = debit
    description = Column(String, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    # Position in the source statement; preserves statement order for same-day rows.
    import_index = Column(Integer, nullable=False, default=1)


class TransactionTagRow(Base):
    __tablename__ = "transaction_tags"

    transaction_id = Column(Integer, ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class SavedFilterRow(Base):
    __tablename__ = "saved_filters"

    id = Column(String(63), primary_key=True)
    name = Column(String, nullable=False)
    expr = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RuleRow(Base):
    __tablename__ = "rules"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    saved_filter_id = Column(String(63), nullable=False)
    set_category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    add_tag_ids = Column(Text, nullable=False, default="[]")
    sort_order = Column(Integer, nullable=False, default=1)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)

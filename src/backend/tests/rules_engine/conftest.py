import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import json
from datetime import date
from decimal import Decimal

import pytest

from common.rules_engine.config import RulesEngineConfig
from common.rules_engine.context import RuleContext
from common.rules_engine.models import Category, Rule, SavedFilter, Tag, TransactionRecord


@pytest.fixture
def categories():
    return [
        Category(id=1, name="Groceries"),
        Category(id=2, name="Eating Out"),
        Category(id=3, name="Transport"),
    ]


@pytest.fixture
def tags():
    return [Tag(id=10, name="WORK"), Tag(id=11, name="REIMBURSABLE"), Tag(id=12, name="COFFEE")]


@pytest.fixture
def make_ctx(categories, tags):
    def _make(*, sample_limit: int = 3) -> RuleContext:
        return RuleContext.from_taxonomy(categories, tags, RulesEngineConfig(sample_limit=sample_limit))

    return _make


@pytest.fixture
def make_txn():
    def _make(
        txn_id: int,
        *,
        description: str = "",
        amount="-10",
        posted_date: date = date(2024, 3, 1),
        category_id=None,
        tag_ids=(),
        notes: str = "",
        account_id: int = 1,
        account_name: str = "Everyday",
    ) -> TransactionRecord:
        return TransactionRecord(
            id=txn_id,
            account_id=account_id,
            account_name=account_name,
            posted_date=posted_date,
            amount=Decimal(str(amount)),
            description=description,
            notes=notes,
            category_id=category_id,
            tag_ids=list(tag_ids),
        )

    return _make


@pytest.fixture
def make_rule():
    def _make(
        rule_id: int,
        saved_filter_id: str,
        *,
        name: str | None = None,
        set_category_id=None,
        add_tag_ids=(),
        sort_order: int | None = None,
        enabled: bool = True,
    ) -> Rule:
        return Rule(
            id=rule_id,
            name=name or f"rule {rule_id}",
            saved_filter_id=saved_filter_id,
            set_category_id=set_category_id,
            add_tag_ids=json.dumps(list(add_tag_ids)),
            sort_order=rule_id if sort_order is None else sort_order,
            enabled=enabled,
        )

    return _make


@pytest.fixture
def make_filters():
    def _make(**exprs: str) -> dict:
        return {key: SavedFilter(id=key, name=key.replace("_", " "), expr=expr) for key, expr in exprs.items()}

    return _make

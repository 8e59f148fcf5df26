import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from datetime import date
from decimal import Decimal

import pytest

from common.rules_engine.models import TransactionRecord


@pytest.fixture
def make_row():
    def _make(
        *,
        description: str = "",
        notes: str = "",
        account_name: str = "Everyday",
        category_name: str = "Uncategorised",
        tag_names=(),
        amount="-10",
        posted_date: date = date(2024, 3, 15),
    ) -> TransactionRecord:
        return TransactionRecord(
            id=1,
            account_name=account_name,
            posted_date=posted_date,
            amount=Decimal(str(amount)),
            description=description,
            notes=notes,
            category_name=category_name,
            tag_names=list(tag_names),
        )

    return _make

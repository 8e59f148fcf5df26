import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work,
# even when pytest's rootdir is the repository root (repo-level pytest.ini).
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from datetime import date

import pytest

from connectors.ledger_db import repository
from connectors.ledger_db.config import LedgerDbConfig, create_ledger_engine, create_session_factory
from connectors.ledger_db.schema import create_schema


@pytest.fixture
def ledger_sessions():
    """Session factory over a fresh in-memory ledger database."""
    engine = create_ledger_engine(LedgerDbConfig(database_url="sqlite://"))
    create_schema(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seeded_ledger(ledger_sessions):
    """Two accounts, a small taxonomy, five transactions, three saved filters and three rules."""
    with ledger_sessions.begin() as session:
        everyday = repository.add_account(session, "Everyday")
        card = repository.add_account(session, "Credit Card")
        groceries = repository.add_category(session, "Groceries").id
        eating_out = repository.add_category(session, "Eating Out").id
        transport = repository.add_category(session, "Transport").id
        work = repository.add_tag(session, "WORK").id
        coffee = repository.add_tag(session, "COFFEE").id

        txns = {
            "woolworths": repository.add_transaction(
                session, account_id=everyday, posted_date=date(2024, 3, 2), amount="-84.20", description="WOOLWORTHS 1234"
            ),
            "coffee": repository.add_transaction(
                session, account_id=card, posted_date=date(2024, 3, 3), amount="-4.50", description="Coffee Club"
            ),
            "uber": repository.add_transaction(
                session,
                account_id=card,
                posted_date=date(2024, 3, 9),
                amount="-23.10",
                description="UBER TRIP",
                notes="client meeting",
            ),
            "salary": repository.add_transaction(
                session, account_id=everyday, posted_date=date(2024, 3, 15), amount="3200", description="ACME PAYROLL"
            ),
            "april_coffee": repository.add_transaction(
                session,
                account_id=card,
                posted_date=date(2024, 4, 1),
                amount="-5.00",
                description="Coffee Club",
                category_id=eating_out,
                tag_ids=[coffee],
            ),
        }

        repository.upsert_saved_filter(session, "groceries", "Groceries", "desc:woolworths OR desc:coles")
        repository.upsert_saved_filter(session, "coffee", "Coffee", "coffee")
        repository.upsert_saved_filter(session, "rides", "Rides", "desc:uber type:debit")

        rules = {
            "groceries": repository.insert_rule(
                session, name="Groceries", saved_filter_id="groceries", set_category_id=groceries
            ).id,
            "coffee": repository.insert_rule(
                session, name="Coffee", saved_filter_id="coffee", set_category_id=eating_out, add_tag_ids=[coffee]
            ).id,
            "rides": repository.insert_rule(
                session, name="Rides", saved_filter_id="rides", set_category_id=transport, add_tag_ids=[work]
            ).id,
        }

    return {
        "sessions": ledger_sessions,
        "accounts": {"everyday": everyday, "card": card},
        "categories": {"groceries": groceries, "eating_out": eating_out, "transport": transport},
        "tags": {"work": work, "coffee": coffee},
        "transactions": txns,
        "rules": rules,
    }

from datetime import date

import pytest

from common.rules_engine.models import RunMode, TransactionChange
from common.rules_engine.runner import RuleApplyError
from connectors.ledger_db import repository
from pipelines.rules_run import run_rules
from pipelines.rules_store import SqlRulesStore


def test_fixture_store_dry_run(household_store, engine_config):
    report = run_rules(household_store, config=engine_config)

    assert report.mode == RunMode.DRY_RUN
    assert [o.rule_id for o in report.outcomes] == [1, 2, 3, 4]
    assert report.outcomes[3].error == "saved filter not found: missing"
    assert report.summary.transactions_scoped == 5
    assert report.summary.total_modified == 4
    assert report.summary.total_category_changes == 4
    assert report.summary.total_tag_changes == 4
    assert report.summary.failed_rules == 1

    by_id = {c.transaction_id: c for c in report.changes}
    assert by_id[101] == TransactionChange(transaction_id=101, category_changed=True, new_category_id=2, add_tag_ids=[20])
    assert by_id[102] == TransactionChange(transaction_id=102, category_changed=True, new_category_id=3, add_tag_ids=[21])
    assert 103 not in by_id


def test_fixture_store_dry_run_leaves_store_untouched(household_store, engine_config):
    run_rules(household_store, config=engine_config)
    again = run_rules(household_store, config=engine_config)
    assert again.summary.total_modified == 4


def test_account_scope_excludes_other_accounts(household_store, engine_config):
    report = run_rules(household_store, account_ids=[2], config=engine_config)
    assert report.summary.transactions_scoped == 2
    assert {c.transaction_id for c in report.changes} == {102, 104}
    sampled = {s.transaction_id for o in report.outcomes for s in o.samples}
    assert sampled <= {102, 104}


def test_date_scope_is_inclusive(household_store, engine_config):
    report = run_rules(
        household_store,
        date_from=date(2025, 1, 5),
        date_to=date(2025, 3, 31),
        config=engine_config,
    )
    assert report.summary.transactions_scoped == 4
    assert 105 not in {c.transaction_id for c in report.changes}


def test_inverted_date_scope_is_rejected(household_store, engine_config):
    with pytest.raises(ValueError):
        run_rules(household_store, date_from=date(2025, 2, 1), date_to=date(2025, 1, 1), config=engine_config)


def test_fixture_store_apply_is_idempotent(household_store, engine_config):
    first = run_rules(household_store, mode=RunMode.APPLY, config=engine_config)
    assert first.summary.total_modified == 4

    stored = {t.id: t for t in household_store.load_transactions()}
    assert stored[101].category_name == "Groceries"
    assert stored[101].tag_names == ["PANTRY"]

    second = run_rules(household_store, mode=RunMode.APPLY, config=engine_config)
    assert second.summary.total_modified == 0
    assert second.changes == []


def test_sql_store_dry_run_does_not_write(seeded_ledger, engine_config):
    store = SqlRulesStore(seeded_ledger["sessions"])
    report = run_rules(store, config=engine_config)

    assert report.summary.transactions_scoped == 5
    assert report.summary.total_modified == 3
    assert report.summary.total_category_changes == 3
    assert report.summary.total_tag_changes == 2
    coffee = report.outcomes[1]
    assert coffee.rule_name == "Coffee"
    assert coffee.matched == 2
    assert coffee.category_changes == 1

    txns = {t.id: t for t in store.load_transactions()}
    assert txns[seeded_ledger["transactions"]["woolworths"]].category_id is None


def test_sql_store_apply_then_rerun_changes_nothing(seeded_ledger, engine_config):
    store = SqlRulesStore(seeded_ledger["sessions"])
    applied = run_rules(store, mode=RunMode.APPLY, config=engine_config)
    assert applied.summary.total_modified == 3

    txns = {t.id: t for t in store.load_transactions()}
    uber = txns[seeded_ledger["transactions"]["uber"]]
    assert uber.category_name == "Transport"
    assert uber.tag_names == ["WORK"]

    again = run_rules(store, mode=RunMode.APPLY, config=engine_config)
    assert again.summary.total_modified == 0


def test_sql_store_account_scope(seeded_ledger, engine_config):
    store = SqlRulesStore(seeded_ledger["sessions"])
    card = seeded_ledger["accounts"]["card"]
    report = run_rules(store, mode=RunMode.APPLY, account_ids=[card], config=engine_config)
    assert report.summary.transactions_scoped == 3
    assert report.summary.total_modified == 2

    txns = {t.id: t for t in store.load_transactions()}
    assert txns[seeded_ledger["transactions"]["woolworths"]].category_id is None


def test_sql_store_apply_failure_rolls_back_everything(seeded_ledger, engine_config):
    sessions = seeded_ledger["sessions"]
    with sessions.begin() as session:
        # Tag 999 does not exist, so linking it violates the foreign key.
        repository.insert_rule(session, name="Bad tag", saved_filter_id="coffee", add_tag_ids=[999])

    store = SqlRulesStore(sessions)
    before = store.load_transactions()
    with pytest.raises(RuleApplyError):
        run_rules(store, mode=RunMode.APPLY, config=engine_config)
    assert store.load_transactions() == before


def test_sql_store_apply_changes_unknown_transaction(seeded_ledger):
    store = SqlRulesStore(seeded_ledger["sessions"])
    woolworths = seeded_ledger["transactions"]["woolworths"]
    groceries = seeded_ledger["categories"]["groceries"]
    changes = [
        TransactionChange(transaction_id=woolworths, category_changed=True, new_category_id=groceries),
        TransactionChange(transaction_id=12345, category_changed=True, new_category_id=groceries),
    ]
    with pytest.raises(RuleApplyError, match="transaction not found"):
        store.apply_changes(changes)
    txns = {t.id: t for t in store.load_transactions()}
    assert txns[woolworths].category_id is None

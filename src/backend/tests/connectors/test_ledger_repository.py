from datetime import date
from decimal import Decimal

import pytest

from common.rules_engine.models import TransactionChange
from common.rules_engine.saved_filters import SavedFilterError
from connectors.ledger_db import repository
from connectors.ledger_db.repository import RuleStoreError


def _rule_ids(sessions):
    with sessions() as session:
        rules = repository.load_rules(session)
    assert [r.sort_order for r in rules] == list(range(1, len(rules) + 1))
    return [r.id for r in rules]


def test_insert_rule_appends_with_dense_sort_order(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    rules = seeded_ledger["rules"]
    assert _rule_ids(sessions) == [rules["groceries"], rules["coffee"], rules["rides"]]


def test_insert_rule_encodes_tag_ids(seeded_ledger):
    with seeded_ledger["sessions"].begin() as session:
        rule = repository.insert_rule(session, name="Tagged", saved_filter_id="coffee", add_tag_ids=[2, 1, 2, 0])
    assert rule.add_tag_ids == "[1, 2]"
    assert rule.sort_order == 4


def test_insert_rule_requires_name_and_filter(ledger_sessions):
    with ledger_sessions() as session:
        with pytest.raises(RuleStoreError, match="rule name is required"):
            repository.insert_rule(session, name=" ", saved_filter_id="x")
        with pytest.raises(RuleStoreError, match="saved filter id is required"):
            repository.insert_rule(session, name="x", saved_filter_id="")


def test_reorder_rule_moves_and_clamps(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    g, c, r = (seeded_ledger["rules"][k] for k in ("groceries", "coffee", "rides"))

    with sessions.begin() as session:
        repository.reorder_rule(session, r, 0)
    assert _rule_ids(sessions) == [r, g, c]

    with sessions.begin() as session:
        repository.reorder_rule(session, r, 99)
    assert _rule_ids(sessions) == [g, c, r]

    with sessions.begin() as session:
        repository.reorder_rule(session, c, -5)
    assert _rule_ids(sessions) == [c, g, r]


def test_reorder_unknown_rule(seeded_ledger):
    with seeded_ledger["sessions"]() as session:
        with pytest.raises(RuleStoreError, match="rule not found"):
            repository.reorder_rule(session, 999, 0)


def test_delete_rule_renumbers(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    rules = seeded_ledger["rules"]
    with sessions.begin() as session:
        repository.delete_rule(session, rules["groceries"])
    assert _rule_ids(sessions) == [rules["coffee"], rules["rides"]]


def test_update_and_toggle_rule(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    rules = seeded_ledger["rules"]
    with sessions.begin() as session:
        rule = repository.toggle_rule_enabled(session, rules["coffee"], False)
        assert rule.enabled is False
        updated = repository.update_rule(
            session, rule.model_copy(update={"name": "Coffee runs", "add_tag_ids": "3,1,3", "sort_order": 40})
        )
    assert updated.name == "Coffee runs"
    assert updated.add_tag_ids == "[1, 3]"
    assert updated.enabled is False
    # Position only moves through reorder_rule.
    assert updated.sort_order == 2


def test_update_rule_rejects_bad_tag_encoding(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    with sessions() as session:
        rule = repository.load_rules(session)[0]
        with pytest.raises(RuleStoreError, match="invalid add_tag_ids"):
            repository.update_rule(session, rule.model_copy(update={"add_tag_ids": "[1,"}))


def test_upsert_saved_filter_stores_canonical_form(ledger_sessions):
    with ledger_sessions.begin() as session:
        repository.upsert_saved_filter(session, "Coffee", "Coffee", "coffee   tea")
        repository.upsert_saved_filter(session, "coffee", "Coffee v2", "coffee OR tea")
    with ledger_sessions() as session:
        saved = repository.load_saved_filters(session)
    assert [(s.id, s.name, s.expr) for s in saved] == [("coffee", "Coffee v2", "coffee OR tea")]


def test_upsert_saved_filter_rejects_non_strict_expression(ledger_sessions):
    with ledger_sessions.begin() as session:
        with pytest.raises(SavedFilterError, match="parentheses"):
            repository.upsert_saved_filter(session, "mixed", "Mixed", "cat:Food OR cat:Transport AND amt:>50")
    with ledger_sessions() as session:
        assert repository.load_saved_filters(session) == []


def test_delete_saved_filter(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    with sessions.begin() as session:
        repository.delete_saved_filter(session, "Rides")
    with sessions() as session:
        assert [s.id for s in repository.load_saved_filters(session)] == ["coffee", "groceries"]
        with pytest.raises(RuleStoreError):
            repository.delete_saved_filter(session, "rides")


def test_load_transactions_scopes_and_orders(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    txns = seeded_ledger["transactions"]
    card = seeded_ledger["accounts"]["card"]

    with sessions() as session:
        every = repository.load_transactions(session)
        card_only = repository.load_transactions(session, account_ids=[card])
        march = repository.load_transactions(session, date_from=date(2024, 3, 3), date_to=date(2024, 3, 31))

    assert [t.id for t in every] == list(txns.values())
    assert {t.account_name for t in card_only} == {"Credit Card"}
    assert [t.id for t in card_only] == [txns["coffee"], txns["uber"], txns["april_coffee"]]
    assert [t.id for t in march] == [txns["coffee"], txns["uber"], txns["salary"]]

    april = every[-1]
    assert april.amount == Decimal("-5.00")
    assert april.category_name == "Eating Out"
    assert april.tag_names == ["COFFEE"]


def test_apply_transaction_changes_skips_existing_tags(seeded_ledger):
    sessions = seeded_ledger["sessions"]
    txn_id = seeded_ledger["transactions"]["april_coffee"]
    tags = seeded_ledger["tags"]
    change = TransactionChange(transaction_id=txn_id, add_tag_ids=[tags["coffee"], tags["work"]])

    with sessions.begin() as session:
        assert repository.apply_transaction_changes(session, [change]) == 1
    with sessions() as session:
        record = repository.load_transactions(session, date_from=date(2024, 4, 1))[0]
    assert sorted(record.tag_ids) == sorted([tags["coffee"], tags["work"]])
    assert record.category_name == "Eating Out"


def test_apply_transaction_changes_unknown_transaction(seeded_ledger):
    with seeded_ledger["sessions"]() as session:
        with pytest.raises(RuleStoreError, match="transaction not found"):
            repository.apply_transaction_changes(session, [TransactionChange(transaction_id=999)])

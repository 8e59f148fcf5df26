"""
Ledger database reads and writes.

Every function takes an open SQLAlchemy session and only flushes; the caller owns the
transaction (`with sessions.begin() as session:`).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from common.filtering.values import DEFAULT_SHORT_YEAR_CENTURY
from common.rules_engine.models import (
    Category,
    Rule,
    SavedFilter,
    Tag,
    TransactionChange,
    TransactionRecord,
)
from common.rules_engine.resolver import decode_tag_ids, encode_tag_ids
from common.rules_engine.saved_filters import canonical_saved_filter, normalize_saved_filter_id

from .schema import (
    AccountRow,
    CategoryRow,
    RuleRow,
    SavedFilterRow,
    TagRow,
    TransactionRow,
    TransactionTagRow,
)


class RuleStoreError(ValueError):
    pass


def add_account(session: Session, name: str) -> int:
    clean = _require_text(name, "account name")
    row = AccountRow(name=clean)
    session.add(row)
    session.flush()
    return row.id


def add_category(session: Session, name: str) -> Category:
    clean = _require_text(name, "category name")
    row = CategoryRow(name=clean)
    session.add(row)
    session.flush()
    return Category(id=row.id, name=row.name)


def add_tag(session: Session, name: str) -> Tag:
    clean = _require_text(name, "tag name")
    row = TagRow(name=clean)
    session.add(row)
    session.flush()
    return Tag(id=row.id, name=row.name)


def add_transaction(
    session: Session,
    *,
    account_id: int,
    posted_date: date,
    amount: Decimal | int | str,
    description: str = "",
    notes: str = "",
    category_id: Optional[int] = None,
    tag_ids: Iterable[int] = (),
    import_index: Optional[int] = None,
) -> int:
    if import_index is None:
        current = session.query(func.max(TransactionRow.import_index)).scalar()
        import_index = 0 if current is None else current + 1
    row = TransactionRow(
        account_id=account_id,
        posted_date=posted_date,
        amount=Decimal(str(amount)),
        description=description,
        notes=notes,
        category_id=category_id,
        import_index=import_index,
    )
    session.add(row)
    session.flush()
    for tag_id in sorted(set(tag_ids)):
        session.add(TransactionTagRow(transaction_id=row.id, tag_id=tag_id))
    session.flush()
    return row.id


def load_categories(session: Session) -> List[Category]:
    rows = session.query(CategoryRow).order_by(CategoryRow.id).all()
    return [Category(id=r.id, name=r.name) for r in rows]


def load_tags(session: Session) -> List[Tag]:
    rows = session.query(TagRow).order_by(TagRow.id).all()
    return [Tag(id=r.id, name=r.name) for r in rows]


def load_saved_filters(session: Session) -> List[SavedFilter]:
    rows = session.query(SavedFilterRow).order_by(SavedFilterRow.id).all()
    return [SavedFilter(id=r.id, name=r.name, expr=r.expr) for r in rows]


def upsert_saved_filter(
    session: Session,
    filter_id: str,
    name: str,
    expr: str,
    *,
    short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY,
) -> SavedFilter:
    """Insert or replace a saved filter. Expressions that fail a strict parse are rejected."""
    saved = canonical_saved_filter(filter_id, name, expr, short_year_century=short_year_century)
    row = session.get(SavedFilterRow, saved.id)
    if row is None:
        row = SavedFilterRow(id=saved.id, name=saved.name, expr=saved.expr)
        session.add(row)
    else:
        row.name = saved.name
        row.expr = saved.expr
    session.flush()
    return saved


def delete_saved_filter(session: Session, filter_id: str) -> None:
    row = session.get(SavedFilterRow, normalize_saved_filter_id(filter_id))
    if row is None:
        raise RuleStoreError(f"saved filter not found: {filter_id}")
    session.delete(row)
    session.flush()


def load_rules(session: Session) -> List[Rule]:
    rows = session.query(RuleRow).order_by(RuleRow.sort_order, RuleRow.id).all()
    return [_rule_from_row(r) for r in rows]


def insert_rule(
    session: Session,
    *,
    name: str,
    saved_filter_id: str,
    set_category_id: Optional[int] = None,
    add_tag_ids: Iterable[int] = (),
    enabled: bool = True,
) -> Rule:
    """Append a rule after every existing rule."""
    row = RuleRow(
        name=_require_text(name, "rule name"),
        saved_filter_id=_require_text(saved_filter_id, "saved filter id"),
        set_category_id=set_category_id,
        add_tag_ids=encode_tag_ids(add_tag_ids),
        sort_order=(session.query(func.count(RuleRow.id)).scalar() or 0) + 1,
        enabled=enabled,
    )
    session.add(row)
    session.flush()
    return _rule_from_row(row)


def update_rule(session: Session, rule: Rule) -> Rule:
    """Update a rule's fields in place; position is changed only by `reorder_rule`."""
    row = _get_rule_row(session, rule.id)
    try:
        tag_ids = decode_tag_ids(rule.add_tag_ids)
    except ValueError as exc:
        raise RuleStoreError(f"invalid add_tag_ids: {exc}") from exc
    row.name = _require_text(rule.name, "rule name")
    row.saved_filter_id = _require_text(rule.saved_filter_id, "saved filter id")
    row.set_category_id = rule.set_category_id
    row.add_tag_ids = encode_tag_ids(tag_ids)
    row.enabled = rule.enabled
    session.flush()
    return _rule_from_row(row)


def delete_rule(session: Session, rule_id: int) -> None:
    session.delete(_get_rule_row(session, rule_id))
    session.flush()
    _renumber(session, session.query(RuleRow).order_by(RuleRow.sort_order, RuleRow.id).all())


def reorder_rule(session: Session, rule_id: int, new_index: int) -> None:
    """Move a rule to 0-based position `new_index` (clamped) and renumber 1..N."""
    rows = session.query(RuleRow).order_by(RuleRow.sort_order, RuleRow.id).all()
    current = next((i for i, r in enumerate(rows) if r.id == rule_id), None)
    if current is None:
        raise RuleStoreError(f"rule not found: {rule_id}")
    target = max(0, min(new_index, len(rows) - 1))
    moved = rows.pop(current)
    rows.insert(target, moved)
    _renumber(session, rows)


def toggle_rule_enabled(session: Session, rule_id: int, enabled: bool) -> Rule:
    row = _get_rule_row(session, rule_id)
    row.enabled = enabled
    session.flush()
    return _rule_from_row(row)


def load_transactions(
    session: Session,
    *,
    account_ids: Optional[Sequence[int]] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[TransactionRecord]:
    """Scoped transactions in statement order. No account ids means every account."""
    query = (
        session.query(TransactionRow, AccountRow.name, CategoryRow.name)
        .outerjoin(AccountRow, AccountRow.id == TransactionRow.account_id)
        .outerjoin(CategoryRow, CategoryRow.id == TransactionRow.category_id)
    )
    if account_ids:
        query = query.filter(TransactionRow.account_id.in_(list(account_ids)))
    if date_from is not None:
        query = query.filter(TransactionRow.posted_date >= date_from)
    if date_to is not None:
        query = query.filter(TransactionRow.posted_date <= date_to)
    rows = query.order_by(TransactionRow.import_index, TransactionRow.id).all()

    tags_by_txn = _load_transaction_tags(session, [txn.id for txn, _, _ in rows])
    records: List[TransactionRecord] = []
    for txn, account_name, category_name in rows:
        tags = tags_by_txn.get(txn.id, [])
        records.append(
            TransactionRecord(
                id=txn.id,
                account_id=txn.account_id,
                account_name=account_name or "",
                posted_date=txn.posted_date,
                amount=Decimal(str(txn.amount)),
                description=txn.description or "",
                notes=txn.notes or "",
                category_id=txn.category_id,
                category_name=category_name or "",
                tag_ids=[tag_id for tag_id, _ in tags],
                tag_names=[name for _, name in tags],
            )
        )
    return records


def apply_transaction_changes(session: Session, changes: Iterable[TransactionChange]) -> int:
    """Write category updates and tag links; existing links are left alone. Returns rows touched."""
    touched = 0
    for change in changes:
        row = session.get(TransactionRow, change.transaction_id)
        if row is None:
            raise RuleStoreError(f"transaction not found: {change.transaction_id}")
        if change.category_changed:
            row.category_id = change.new_category_id
        if change.add_tag_ids:
            existing = {
                tag_id
                for (tag_id,) in session.query(TransactionTagRow.tag_id).filter(
                    TransactionTagRow.transaction_id == row.id
                )
            }
            for tag_id in sorted(set(change.add_tag_ids) - existing):
                session.add(TransactionTagRow(transaction_id=row.id, tag_id=tag_id))
        touched += 1
    session.flush()
    return touched


def _load_transaction_tags(session: Session, txn_ids: List[int]) -> Dict[int, List[tuple[int, str]]]:
    if not txn_ids:
        return {}
    rows = (
        session.query(TransactionTagRow.transaction_id, TagRow.id, TagRow.name)
        .join(TagRow, TagRow.id == TransactionTagRow.tag_id)
        .filter(TransactionTagRow.transaction_id.in_(txn_ids))
        .order_by(TransactionTagRow.transaction_id, TagRow.id)
        .all()
    )
    out: Dict[int, List[tuple[int, str]]] = {}
    for txn_id, tag_id, name in rows:
        out.setdefault(txn_id, []).append((tag_id, name))
    return out


def _get_rule_row(session: Session, rule_id: int) -> RuleRow:
    row = session.get(RuleRow, rule_id) if rule_id and rule_id > 0 else None
    if row is None:
        raise RuleStoreError(f"rule not found: {rule_id}")
    return row


def _renumber(session: Session, rows: Sequence[RuleRow]) -> None:
    for i, row in enumerate(rows, start=1):
        row.sort_order = i
    session.flush()


def _rule_from_row(row: RuleRow) -> Rule:
    return Rule(
        id=row.id,
        name=row.name,
        saved_filter_id=row.saved_filter_id,
        set_category_id=row.set_category_id,
        add_tag_ids=row.add_tag_ids or "[]",
        sort_order=row.sort_order,
        enabled=bool(row.enabled),
    )


def _require_text(value: str, label: str) -> str:
    clean = (value or "").strip()
    if not clean:
        raise RuleStoreError(f"{label} is required")
    return clean

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Protocol

from .nodes import And, Comparison, Expr, FieldPredicate, FilterField, Not, Or, TextScope, TextTerm
from .values import date_token_bounds


class FilterRow(Protocol):
    """Anything the evaluator can match: a transaction record or a rule working view."""

    description: str
    notes: str
    account_name: str
    category_name: str
    tag_names: Iterable[str]
    amount: Decimal
    posted_date: date


def evaluate(node: Optional[Expr], row: FilterRow) -> bool:
    if node is None:
        return True
    if isinstance(node, TextTerm):
        return _eval_text(node, row)
    if isinstance(node, FieldPredicate):
        return _eval_field(node, row)
    if isinstance(node, And):
        return all(evaluate(child, row) for child in node.children)
    if isinstance(node, Or):
        return any(evaluate(child, row) for child in node.children)
    if isinstance(node, Not):
        return not evaluate(node.child, row)
    raise TypeError(f"Unsupported filter node: {type(node).__name__}")


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def _same_name(left: Optional[str], right: str) -> bool:
    return (left or "").strip().casefold() == right.strip().casefold()


def _eval_text(node: TextTerm, row: FilterRow) -> bool:
    needle = node.text.strip()
    if not needle:
        return True
    if _contains(row.description, needle):
        return True
    if node.scope == TextScope.METADATA:
        if _contains(row.notes, needle):
            return True
        return any(_contains((name or "").strip(), needle) for name in row.tag_names)
    return False


def _eval_field(node: FieldPredicate, row: FilterRow) -> bool:
    field = node.field
    if field == FilterField.DESC:
        return _contains(row.description, node.value)
    if field == FilterField.NOTE:
        return _contains(row.notes, node.value)
    if field == FilterField.ACC:
        return _contains(row.account_name, node.value)
    if field == FilterField.CAT:
        return _same_name(row.category_name, node.value)
    if field == FilterField.TAG:
        return any(_same_name(name, node.value) for name in row.tag_names)
    if field == FilterField.TYPE:
        is_debit = _as_decimal(row.amount) < 0
        return is_debit if node.value == "debit" else not is_debit
    if field == FilterField.AMT:
        return _eval_amount(node, _as_decimal(row.amount))
    if field == FilterField.DATE:
        return _eval_date(node, row.posted_date)
    return False


def _eval_amount(node: FieldPredicate, amount: Decimal) -> bool:
    if node.op == Comparison.RANGE:
        return Decimal(node.low) <= amount <= Decimal(node.high)
    target = Decimal(node.value)
    if node.op == Comparison.EQ:
        return amount == target
    if node.op == Comparison.LT:
        return amount < target
    if node.op == Comparison.LE:
        return amount <= target
    if node.op == Comparison.GT:
        return amount > target
    if node.op == Comparison.GE:
        return amount >= target
    return False


def _eval_date(node: FieldPredicate, posted: Optional[date]) -> bool:
    if posted is None:
        return False
    if node.op == Comparison.RANGE:
        start, _ = date_token_bounds(node.low)
        _, end = date_token_bounds(node.high)
    else:
        start, end = date_token_bounds(node.value)
    return start <= posted <= end

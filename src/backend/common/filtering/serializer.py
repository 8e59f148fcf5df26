from __future__ import annotations

from typing import Optional

from .lexer import KEYWORDS, WORD_BREAK_CHARS
from .nodes import And, Comparison, Expr, FieldPredicate, FilterField, Not, Or, TextTerm

_PRECEDENCE = {Or: 1, And: 2, Not: 3, TextTerm: 4, FieldPredicate: 4}


def serialize(node: Optional[Expr]) -> str:
    """Render ``node`` in canonical form.

    Operators are uppercase and children keep source order. Parentheses appear only
    where precedence requires them, and around any AND group nested in an OR (and vice
    versa) so the output is always accepted by strict parsing.
    """
    if node is None:
        return ""
    return _render(node)


def _render(node: Expr) -> str:
    if isinstance(node, TextTerm):
        return format_value(node.text)
    if isinstance(node, FieldPredicate):
        return _render_field(node)
    if isinstance(node, Not):
        return "NOT " + _render_child(node.child, node)
    joiner = " AND " if isinstance(node, And) else " OR "
    return joiner.join(_render_child(child, node) for child in node.children)


def _render_child(child: Expr, parent: Expr) -> str:
    text = _render(child)
    if _needs_parens(child, parent):
        return f"({text})"
    return text


def _needs_parens(child: Expr, parent: Expr) -> bool:
    if _PRECEDENCE[type(child)] < _PRECEDENCE[type(parent)]:
        return True
    if isinstance(parent, And) and isinstance(child, Or):
        return True
    if isinstance(parent, Or) and isinstance(child, And):
        return True
    return False


def _render_field(node: FieldPredicate) -> str:
    name = node.field.value
    if node.op == Comparison.RANGE:
        return f"{name}:{node.low}..{node.high}"
    if node.field == FilterField.AMT:
        prefix = "" if node.op == Comparison.EQ else node.op.value
        return f"{name}:{prefix}{node.value}"
    if node.field in (FilterField.TYPE, FilterField.DATE):
        return f"{name}:{node.value}"
    return f"{name}:{format_value(node.value)}"


def is_bare_word(value: str) -> bool:
    if not value.strip():
        return False
    if any(ch in WORD_BREAK_CHARS for ch in value):
        return False
    return value not in KEYWORDS


def format_value(value: str) -> str:
    if is_bare_word(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'

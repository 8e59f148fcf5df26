from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from enum import Enum
from typing import Optional, Tuple, Union


class FilterField(str, Enum):
    DESC = "desc"
    NOTE = "note"
    ACC = "acc"
    CAT = "cat"
    TAG = "tag"
    AMT = "amt"
    TYPE = "type"
    DATE = "date"

    @classmethod
    def lookup(cls, raw: str) -> Optional["FilterField"]:
        key = (raw or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        return None


TEXT_FIELDS = frozenset(
    {FilterField.DESC, FilterField.NOTE, FilterField.ACC, FilterField.CAT, FilterField.TAG}
)


class Comparison(str, Enum):
    CONTAINS = "contains"
    EQ = "="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    RANGE = ".."


class TextScope(str, Enum):
    DESCRIPTION = "description"
    # Description plus notes and tag names; used for purely textual queries.
    METADATA = "metadata"


@dataclass(frozen=True)
class TextTerm:
    text: str
    scope: TextScope = TextScope.DESCRIPTION
    grouped: bool = dc_field(default=False, compare=False)


@dataclass(frozen=True)
class FieldPredicate:
    field: FilterField
    op: Comparison
    value: str = ""
    low: Optional[str] = None
    high: Optional[str] = None
    grouped: bool = dc_field(default=False, compare=False)


@dataclass(frozen=True)
class And:
    children: Tuple["Expr", ...]
    grouped: bool = dc_field(default=False, compare=False)


@dataclass(frozen=True)
class Or:
    children: Tuple["Expr", ...]
    grouped: bool = dc_field(default=False, compare=False)


@dataclass(frozen=True)
class Not:
    child: "Expr"
    grouped: bool = dc_field(default=False, compare=False)


Expr = Union[TextTerm, FieldPredicate, And, Or, Not]


def with_grouped(node: Expr) -> Expr:
    """Return a copy of ``node`` flagged as explicitly parenthesised in source."""
    if isinstance(node, TextTerm):
        return TextTerm(node.text, node.scope, grouped=True)
    if isinstance(node, FieldPredicate):
        return FieldPredicate(node.field, node.op, node.value, node.low, node.high, grouped=True)
    if isinstance(node, And):
        return And(node.children, grouped=True)
    if isinstance(node, Or):
        return Or(node.children, grouped=True)
    return Not(node.child, grouped=True)


def flatten_children(kind: type, children: list[Expr]) -> Tuple[Expr, ...]:
    out: list[Expr] = []
    for child in children:
        if isinstance(child, kind) and not child.grouped:
            out.extend(child.children)  # type: ignore[union-attr]
            continue
        out.append(child)
    return tuple(out)


def and_nodes(*nodes: Optional[Expr]) -> Optional[Expr]:
    """Combine nodes under a single AND, skipping ``None``; ``None`` when nothing is left."""
    parts: list[Expr] = []
    for node in nodes:
        if node is None:
            continue
        if isinstance(node, And):
            parts.extend(node.children)
            continue
        parts.append(node)
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return And(tuple(parts))


def or_nodes(*nodes: Optional[Expr]) -> Optional[Expr]:
    parts: list[Expr] = []
    for node in nodes:
        if node is None:
            continue
        if isinstance(node, Or):
            parts.extend(node.children)
            continue
        parts.append(node)
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return Or(tuple(parts))


def contains_field_predicate(node: Optional[Expr]) -> bool:
    if node is None:
        return False
    if isinstance(node, FieldPredicate):
        return True
    if isinstance(node, (And, Or)):
        return any(contains_field_predicate(child) for child in node.children)
    if isinstance(node, Not):
        return contains_field_predicate(node.child)
    return False


def mark_text_metadata(node: Optional[Expr]) -> Optional[Expr]:
    """Return a new tree whose text terms also search notes and tag names."""
    if node is None:
        return None
    if isinstance(node, TextTerm):
        return TextTerm(node.text, TextScope.METADATA, grouped=node.grouped)
    if isinstance(node, And):
        return And(tuple(mark_text_metadata(c) for c in node.children), grouped=node.grouped)  # type: ignore[misc]
    if isinstance(node, Or):
        return Or(tuple(mark_text_metadata(c) for c in node.children), grouped=node.grouped)  # type: ignore[misc]
    if isinstance(node, Not):
        return Not(mark_text_metadata(node.child), grouped=node.grouped)  # type: ignore[arg-type]
    return node

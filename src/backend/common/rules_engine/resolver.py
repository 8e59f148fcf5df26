from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Tuple

from common.filtering import (
    Expr,
    FilterSyntaxError,
    contains_field_predicate,
    mark_text_metadata,
    parse_strict,
    serialize,
)
from common.filtering.values import DEFAULT_SHORT_YEAR_CENTURY
from common.logging_config import get_logger

from .models import Rule, SavedFilter

logger = get_logger(__name__)


class RuleResolutionError(ValueError):
    pass


@dataclass(frozen=True)
class ResolvedRule:
    rule: Rule
    node: Expr
    filter_expr: str
    filter_name: str
    add_tag_ids: Tuple[int, ...]


@dataclass(frozen=True)
class RuleResolutionFailure:
    rule: Rule
    reason: str


@dataclass(frozen=True)
class RuleResolution:
    """Enabled rules in run order; each entry is resolved or carries its failure."""

    entries: Tuple[ResolvedRule | RuleResolutionFailure, ...] = field(default_factory=tuple)

    @property
    def resolved(self) -> List[ResolvedRule]:
        return [e for e in self.entries if isinstance(e, ResolvedRule)]

    @property
    def failures(self) -> List[RuleResolutionFailure]:
        return [e for e in self.entries if isinstance(e, RuleResolutionFailure)]


class SavedFilterLookup:
    """Case-insensitive saved filter index keyed by id."""

    def __init__(self, saved_filters: Iterable[SavedFilter]):
        self._by_id: dict[str, SavedFilter] = {}
        for sf in saved_filters:
            key = normalize_filter_key(sf.id)
            if key:
                self._by_id[key] = sf

    def get(self, filter_id: str) -> Optional[SavedFilter]:
        return self._by_id.get(normalize_filter_key(filter_id))

    def __len__(self) -> int:
        return len(self._by_id)


def normalize_filter_key(filter_id: str) -> str:
    return (filter_id or "").strip().lower()


def decode_tag_ids(raw: str | None) -> List[int]:
    """Decode a stored tag id list: JSON array or comma-separated integers."""
    text = (raw or "").strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"decode tag id list {raw!r}: {exc.msg}") from exc
        if not isinstance(data, list) or not all(isinstance(v, int) and not isinstance(v, bool) for v in data):
            raise ValueError(f"decode tag id list {raw!r}: expected an array of integers")
        return list(data)
    ids: List[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ValueError(f"decode tag id list {raw!r}: invalid id {part!r}") from None
    return ids


def encode_tag_ids(ids: Iterable[int]) -> str:
    """Encode tag ids as a sorted, de-duplicated JSON array of positive ids."""
    return json.dumps(sorted({i for i in ids if i > 0}))


def resolve_rule(
    rule: Rule,
    lookup: SavedFilterLookup | Mapping[str, SavedFilter],
    *,
    short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY,
) -> ResolvedRule:
    if not isinstance(lookup, SavedFilterLookup):
        lookup = SavedFilterLookup(lookup.values())

    filter_id = rule.saved_filter_id.strip()
    if not filter_id:
        raise RuleResolutionError("saved filter id is required")
    saved = lookup.get(filter_id)
    if saved is None:
        raise RuleResolutionError(f"saved filter not found: {filter_id}")

    try:
        node = parse_strict(saved.expr.strip(), short_year_century=short_year_century)
    except FilterSyntaxError as exc:
        raise RuleResolutionError(f"saved filter invalid: {exc}") from exc
    if node is None:
        raise RuleResolutionError("saved filter invalid: filter expression is required")
    if not contains_field_predicate(node):
        node = mark_text_metadata(node)

    try:
        tag_ids = decode_tag_ids(rule.add_tag_ids)
    except ValueError as exc:
        raise RuleResolutionError(f"invalid add_tag_ids: {exc}") from exc

    return ResolvedRule(
        rule=rule,
        node=node,
        filter_expr=serialize(node),
        filter_name=saved.name.strip(),
        add_tag_ids=tuple(sorted({i for i in tag_ids if i > 0})),
    )


def resolve_rules(
    rules: Iterable[Rule],
    lookup: SavedFilterLookup | Mapping[str, SavedFilter],
    *,
    short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY,
) -> RuleResolution:
    if not isinstance(lookup, SavedFilterLookup):
        lookup = SavedFilterLookup(lookup.values())

    ordered = sorted(rules, key=lambda r: (r.sort_order, r.id))
    entries: List[ResolvedRule | RuleResolutionFailure] = []
    for rule in ordered:
        if not rule.enabled:
            continue
        try:
            entries.append(resolve_rule(rule, lookup, short_year_century=short_year_century))
        except RuleResolutionError as exc:
            logger.warning(
                "rule_resolution_failed",
                rule_id=rule.id,
                rule_name=rule.name,
                saved_filter_id=rule.saved_filter_id,
                reason=str(exc),
            )
            entries.append(RuleResolutionFailure(rule=rule, reason=str(exc)))
    return RuleResolution(entries=tuple(entries))

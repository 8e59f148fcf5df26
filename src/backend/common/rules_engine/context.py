from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .config import RulesEngineConfig
from .models import Category, Tag, TransactionRecord


@dataclass(frozen=True)
class RuleContext:
    """Name lookups and settings shared by every rule in one run."""

    category_names: Dict[int, str] = field(default_factory=dict)
    tag_names: Dict[int, str] = field(default_factory=dict)
    config: RulesEngineConfig = field(default_factory=RulesEngineConfig)

    @classmethod
    def from_taxonomy(
        cls,
        categories: Iterable[Category],
        tags: Iterable[Tag],
        config: Optional[RulesEngineConfig] = None,
    ) -> "RuleContext":
        return cls(
            category_names={c.id: c.name for c in categories},
            tag_names={t.id: t.name.strip() for t in tags},
            config=config or RulesEngineConfig(),
        )

    def with_record_names(self, records: Iterable[TransactionRecord]) -> "RuleContext":
        """Fill in names for ids the taxonomy lacks from the names carried on records."""
        categories = dict(self.category_names)
        tags = dict(self.tag_names)
        for record in records:
            if record.category_id is not None and record.category_name.strip():
                categories.setdefault(record.category_id, record.category_name.strip())
            # Names only line up with ids when every tag was named.
            if len(record.tag_ids) == len(record.tag_names):
                for tag_id, name in zip(record.tag_ids, record.tag_names):
                    if name.strip():
                        tags.setdefault(tag_id, name.strip())
        return replace(self, category_names=categories, tag_names=tags)

    def category_name(self, category_id: Optional[int]) -> str:
        if category_id is None:
            return self.config.uncategorised_label
        name = self.category_names.get(category_id, "").strip()
        return name or f"Category {category_id}"

    def tag_name(self, tag_id: int) -> str:
        name = self.tag_names.get(tag_id, "").strip()
        return name or f"tag#{tag_id}"

    def sorted_tag_names(self, tag_ids: Iterable[int]) -> List[str]:
        return [self.tag_name(tag_id) for tag_id in sorted(tag_ids)]


@dataclass(frozen=True)
class WorkingRow:
    """Match view of one transaction carrying the category/tags of the current pass."""

    description: str
    notes: str
    account_name: str
    category_name: str
    tag_names: tuple[str, ...]
    amount: Decimal
    posted_date: date

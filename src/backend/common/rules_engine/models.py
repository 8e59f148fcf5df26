from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class RunMode(str, Enum):
    DRY_RUN = "DRY_RUN"
    APPLY = "APPLY"


class SavedFilter(BaseModel):
    id: str
    name: str = ""
    expr: str


class Rule(BaseModel):
    id: int
    name: str
    saved_filter_id: str
    set_category_id: Optional[int] = None
    # Stored encoding: JSON array ("[1, 4]") or comma-separated ids ("1,4").
    add_tag_ids: str = "[]"
    sort_order: int = 0
    enabled: bool = True


class Category(BaseModel):
    id: int
    name: str


class Tag(BaseModel):
    id: int
    name: str


class TransactionRecord(BaseModel):
    id: int
    account_id: Optional[int] = None
    account_name: str = ""
    posted_date: date
    amount: Decimal
    description: str = ""
    notes: str = ""
    category_id: Optional[int] = None
    category_name: str = ""
    tag_ids: List[int] = Field(default_factory=list)
    tag_names: List[str] = Field(default_factory=list)


class RuleRunSample(BaseModel):
    transaction_id: int
    posted_date: date
    amount: Decimal
    description: str = ""
    current_category: str = ""
    new_category: str = ""
    added_tag_names: List[str] = Field(default_factory=list)


class RuleOutcome(BaseModel):
    rule_id: int
    rule_name: str
    filter_id: str = ""
    filter_name: str = ""
    filter_expr: str = ""
    error: Optional[str] = None

    matched: int = 0
    category_changes: int = 0
    tag_changes: int = 0
    samples: List[RuleRunSample] = Field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.error is not None


class RunSummary(BaseModel):
    transactions_scoped: int = 0
    total_modified: int = 0
    total_category_changes: int = 0
    total_tag_changes: int = 0
    failed_rules: int = 0

    def status_line(self) -> str:
        line = (
            f"{self.total_modified} of {self.transactions_scoped} transactions modified "
            f"({self.total_category_changes} category changes, {self.total_tag_changes} tag changes)"
        )
        if self.failed_rules:
            line += f"; {self.failed_rules} rule(s) failed"
        return line


class TransactionChange(BaseModel):
    transaction_id: int
    category_changed: bool = False
    new_category_id: Optional[int] = None
    add_tag_ids: List[int] = Field(default_factory=list)


class RuleRunReport(BaseModel):
    run_id: str
    generated_at: datetime
    mode: RunMode

    outcomes: List[RuleOutcome] = Field(default_factory=list)
    summary: RunSummary = Field(default_factory=RunSummary)
    changes: List[TransactionChange] = Field(default_factory=list)

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from common.logging_config import get_logger
from common.rules_engine.models import (
    Category,
    Rule,
    SavedFilter,
    Tag,
    TransactionChange,
    TransactionRecord,
)
from common.rules_engine.runner import RuleApplyError
from connectors.ledger_db import repository
from connectors.ledger_db.config import (
    LedgerDbConfig,
    create_ledger_engine,
    create_session_factory,
    get_ledger_db_config,
)
from connectors.ledger_db.repository import RuleStoreError
from connectors.ledger_db.schema import create_schema

logger = get_logger(__name__)


class RulesStore(Protocol):
    def load_saved_filters(self) -> List[SavedFilter]:
        ...

    def load_rules(self) -> List[Rule]:
        """Every rule, enabled or not, in run order."""
        ...

    def load_transactions(
        self,
        *,
        account_ids: Optional[Sequence[int]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[TransactionRecord]:
        """Scoped transactions in statement order, then id."""
        ...

    def load_categories(self) -> List[Category]:
        ...

    def load_tags(self) -> List[Tag]:
        ...

    def apply_changes(self, changes: Sequence[TransactionChange]) -> None:
        """Persist every change atomically; raise RuleApplyError after rolling back."""
        ...


class FixturesRulesStore:
    """In-memory store, used by tests and for running rules over a JSON export."""

    def __init__(
        self,
        *,
        saved_filters: Iterable[SavedFilter] = (),
        rules: Iterable[Rule] = (),
        transactions: Iterable[TransactionRecord] = (),
        categories: Iterable[Category] = (),
        tags: Iterable[Tag] = (),
    ) -> None:
        self._saved_filters = list(saved_filters)
        self._rules = list(rules)
        self._categories = list(categories)
        self._tags = list(tags)
        self._transactions: Dict[int, TransactionRecord] = {t.id: t for t in transactions}
        # Statement order is the order the fixture lists transactions in.
        self._order = list(self._transactions)

    @classmethod
    def from_json(cls, path: Path) -> "FixturesRulesStore":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_payload(data)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "FixturesRulesStore":
        return cls(
            saved_filters=[SavedFilter.model_validate(x) for x in data.get("saved_filters", [])],
            rules=[Rule.model_validate(_rule_payload(x)) for x in data.get("rules", [])],
            transactions=[TransactionRecord.model_validate(x) for x in data.get("transactions", [])],
            categories=[Category.model_validate(x) for x in data.get("categories", [])],
            tags=[Tag.model_validate(x) for x in data.get("tags", [])],
        )

    def load_saved_filters(self) -> List[SavedFilter]:
        return list(self._saved_filters)

    def load_rules(self) -> List[Rule]:
        return sorted(self._rules, key=lambda r: (r.sort_order, r.id))

    def load_transactions(
        self,
        *,
        account_ids: Optional[Sequence[int]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[TransactionRecord]:
        wanted = set(account_ids or ())
        categories = {c.id: c.name for c in self._categories}
        tags = {t.id: t.name for t in self._tags}
        out: List[TransactionRecord] = []
        for txn_id in self._order:
            txn = self._transactions[txn_id]
            if wanted and txn.account_id not in wanted:
                continue
            if date_from is not None and txn.posted_date < date_from:
                continue
            if date_to is not None and txn.posted_date > date_to:
                continue
            out.append(
                txn.model_copy(
                    update={
                        "category_name": categories.get(txn.category_id, "") if txn.category_id is not None else "",
                        "tag_names": [tags[i] for i in txn.tag_ids if i in tags],
                    }
                )
            )
        return out

    def load_categories(self) -> List[Category]:
        return list(self._categories)

    def load_tags(self) -> List[Tag]:
        return list(self._tags)

    def apply_changes(self, changes: Sequence[TransactionChange]) -> None:
        updated: Dict[int, TransactionRecord] = {}
        for change in changes:
            txn = updated.get(change.transaction_id) or self._transactions.get(change.transaction_id)
            if txn is None:
                raise RuleApplyError(f"Applying rule changes failed: transaction not found: {change.transaction_id}")
            patch: dict[str, Any] = {}
            if change.category_changed:
                patch["category_id"] = change.new_category_id
            if change.add_tag_ids:
                patch["tag_ids"] = sorted(set(txn.tag_ids) | set(change.add_tag_ids))
            updated[txn.id] = txn.model_copy(update=patch)
        self._transactions.update(updated)


class SqlRulesStore:
    """Rules store backed by the ledger database."""

    def __init__(self, sessions: sessionmaker) -> None:
        self._sessions = sessions

    @classmethod
    def from_config(cls, config: LedgerDbConfig | None = None, *, create: bool = True) -> "SqlRulesStore":
        engine = create_ledger_engine(config or get_ledger_db_config())
        if create:
            create_schema(engine)
        return cls(create_session_factory(engine))

    def load_saved_filters(self) -> List[SavedFilter]:
        with self._sessions() as session:
            return repository.load_saved_filters(session)

    def load_rules(self) -> List[Rule]:
        with self._sessions() as session:
            return repository.load_rules(session)

    def load_transactions(
        self,
        *,
        account_ids: Optional[Sequence[int]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[TransactionRecord]:
        with self._sessions() as session:
            return repository.load_transactions(
                session,
                account_ids=account_ids,
                date_from=date_from,
                date_to=date_to,
            )

    def load_categories(self) -> List[Category]:
        with self._sessions() as session:
            return repository.load_categories(session)

    def load_tags(self) -> List[Tag]:
        with self._sessions() as session:
            return repository.load_tags(session)

    def apply_changes(self, changes: Sequence[TransactionChange]) -> None:
        try:
            with self._sessions.begin() as session:
                repository.apply_transaction_changes(session, changes)
        except (SQLAlchemyError, RuleStoreError) as exc:
            logger.error("rules_apply_rolled_back", changes=len(changes), error=str(exc))
            raise RuleApplyError(f"Applying rule changes failed: {exc}") from exc


def _rule_payload(raw: dict[str, Any]) -> dict[str, Any]:
    out = dict(raw)
    # Fixtures may list tag ids as a JSON array instead of the stored text encoding.
    if isinstance(out.get("add_tag_ids"), list):
        out["add_tag_ids"] = json.dumps(out["add_tag_ids"])
    return out

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Protocol, Sequence

from common.filtering import evaluate
from common.logging_config import get_logger

from .context import RuleContext, WorkingRow
from .models import (
    RuleOutcome,
    RuleRunReport,
    RuleRunSample,
    RunMode,
    RunSummary,
    TransactionChange,
    TransactionRecord,
)
from .resolver import ResolvedRule, RuleResolution, RuleResolutionFailure

logger = get_logger(__name__)


class RuleApplyError(RuntimeError):
    pass


class ChangeWriter(Protocol):
    def apply_changes(self, changes: Sequence[TransactionChange]) -> None:
        """Persist every change in one atomic unit, or nothing at all."""
        ...


class RulesRunner:
    """Runs resolved rules, in order, over a scoped batch of transactions.

    Rules chain within a pass: each rule sees the category and tags left on a
    transaction by the rules before it.
    """

    def __init__(self, context: Optional[RuleContext] = None):
        self._ctx = context or RuleContext()

    def run(
        self,
        resolution: RuleResolution,
        transactions: Iterable[TransactionRecord],
        *,
        mode: RunMode = RunMode.DRY_RUN,
        writer: Optional[ChangeWriter] = None,
    ) -> RuleRunReport:
        if mode == RunMode.APPLY and writer is None:
            raise ValueError("Apply mode requires a change writer.")

        rows = list(transactions)
        ctx = self._ctx.with_record_names(rows)
        outcomes: List[RuleOutcome] = []
        active: List[tuple[ResolvedRule, RuleOutcome]] = []
        summary = RunSummary(transactions_scoped=len(rows))

        for entry in resolution.entries:
            if isinstance(entry, RuleResolutionFailure):
                outcomes.append(
                    RuleOutcome(
                        rule_id=entry.rule.id,
                        rule_name=entry.rule.name,
                        filter_id=entry.rule.saved_filter_id,
                        error=entry.reason,
                    )
                )
                summary.failed_rules += 1
                continue
            outcome = RuleOutcome(
                rule_id=entry.rule.id,
                rule_name=entry.rule.name,
                filter_id=entry.rule.saved_filter_id,
                filter_name=entry.filter_name,
                filter_expr=entry.filter_expr,
            )
            outcomes.append(outcome)
            active.append((entry, outcome))

        changes: List[TransactionChange] = []
        if active:
            for txn in rows:
                change = self._run_transaction(ctx, txn, active)
                if change is None:
                    continue
                changes.append(change)
                summary.total_modified += 1
                if change.category_changed:
                    summary.total_category_changes += 1
                summary.total_tag_changes += len(change.add_tag_ids)

        report = RuleRunReport(
            run_id=str(uuid.uuid4()),
            generated_at=datetime.now(timezone.utc),
            mode=mode,
            outcomes=outcomes,
            summary=summary,
            changes=changes,
        )

        if mode == RunMode.APPLY and changes:
            try:
                writer.apply_changes(changes)  # type: ignore[union-attr]
            except RuleApplyError:
                logger.error("rules_apply_failed", run_id=report.run_id, changes=len(changes))
                raise
            except Exception as exc:
                logger.error("rules_apply_failed", run_id=report.run_id, changes=len(changes), error=str(exc))
                raise RuleApplyError(f"Applying rule changes failed: {exc}") from exc

        logger.info(
            "rules_run_completed",
            run_id=report.run_id,
            mode=mode.value,
            rules=len(outcomes),
            transactions_scoped=summary.transactions_scoped,
            total_modified=summary.total_modified,
            category_changes=summary.total_category_changes,
            tag_changes=summary.total_tag_changes,
            failed_rules=summary.failed_rules,
        )
        return report

    def _run_transaction(
        self,
        ctx: RuleContext,
        txn: TransactionRecord,
        active: Sequence[tuple[ResolvedRule, RuleOutcome]],
    ) -> Optional[TransactionChange]:
        original_category = txn.category_id
        original_tags = frozenset(i for i in txn.tag_ids if i > 0)
        work_category = original_category
        work_tags = set(original_tags)

        for resolved, outcome in active:
            row = WorkingRow(
                description=txn.description,
                notes=txn.notes,
                account_name=txn.account_name,
                category_name=ctx.category_name(work_category),
                tag_names=tuple(ctx.sorted_tag_names(work_tags)),
                amount=txn.amount,
                posted_date=txn.posted_date,
            )
            if not evaluate(resolved.node, row):
                continue

            outcome.matched += 1
            before_category = work_category
            before_tags = frozenset(work_tags)
            if resolved.rule.set_category_id is not None:
                work_category = resolved.rule.set_category_id
            work_tags.update(resolved.add_tag_ids)

            category_changed = before_category != work_category
            added = sorted(work_tags - before_tags)
            if category_changed:
                outcome.category_changes += 1
            outcome.tag_changes += len(added)

            if (category_changed or added) and len(outcome.samples) < ctx.config.sample_limit:
                outcome.samples.append(
                    RuleRunSample(
                        transaction_id=txn.id,
                        posted_date=txn.posted_date,
                        amount=txn.amount,
                        description=txn.description,
                        current_category=ctx.category_name(before_category),
                        new_category=ctx.category_name(work_category),
                        added_tag_names=[ctx.tag_name(i) for i in added],
                    )
                )

        category_changed = work_category != original_category
        added_final = sorted(work_tags - original_tags)
        if not category_changed and not added_final:
            return None
        return TransactionChange(
            transaction_id=txn.id,
            category_changed=category_changed,
            new_category_id=work_category,
            add_tag_ids=added_final,
        )

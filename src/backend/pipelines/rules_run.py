from __future__ import annotations

from datetime import date
from typing import Optional, Sequence

from common.rules_engine.config import RulesEngineConfig, load_rules_engine_config
from common.rules_engine.context import RuleContext
from common.rules_engine.models import RuleRunReport, RunMode
from common.rules_engine.resolver import SavedFilterLookup, resolve_rules
from common.rules_engine.runner import RulesRunner

from .rules_store import RulesStore


def run_rules(
    store: RulesStore,
    *,
    mode: RunMode = RunMode.DRY_RUN,
    account_ids: Optional[Sequence[int]] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    config: Optional[RulesEngineConfig] = None,
) -> RuleRunReport:
    """
    Load rules, saved filters, taxonomy and the scoped transactions from `store`, run every
    enabled rule in order and, in apply mode, write the resulting changes back atomically.
    """
    if date_from is not None and date_to is not None and date_from > date_to:
        raise ValueError("date_from must be on or before date_to.")

    cfg = config or load_rules_engine_config()
    lookup = SavedFilterLookup(store.load_saved_filters())
    resolution = resolve_rules(store.load_rules(), lookup, short_year_century=cfg.short_year_century)
    context = RuleContext.from_taxonomy(store.load_categories(), store.load_tags(), cfg)
    transactions = store.load_transactions(
        account_ids=account_ids,
        date_from=date_from,
        date_to=date_to,
    )
    return RulesRunner(context).run(
        resolution,
        transactions,
        mode=mode,
        writer=store if mode == RunMode.APPLY else None,
    )

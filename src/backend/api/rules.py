from __future__ import annotations

from datetime import date
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from common.rules_engine.models import RuleRunReport, RunMode
from common.rules_engine.runner import RuleApplyError
from pipelines.rules_run import run_rules
from pipelines.rules_store import RulesStore, SqlRulesStore


router = APIRouter(prefix="/rules", tags=["rules"])


class RulesRunRequest(BaseModel):
    account_ids: List[int] = Field(default_factory=list)
    date_from: Optional[date] = None
    date_to: Optional[date] = None


@lru_cache(maxsize=1)
def _default_store() -> SqlRulesStore:
    return SqlRulesStore.from_config()


def get_rules_store() -> RulesStore:
    return _default_store()


def _run(store: RulesStore, body: RulesRunRequest, mode: RunMode) -> RuleRunReport:
    if body.date_from and body.date_to and body.date_from > body.date_to:
        raise HTTPException(status_code=400, detail="date_from must be on or before date_to.")
    try:
        return run_rules(
            store,
            mode=mode,
            account_ids=body.account_ids or None,
            date_from=body.date_from,
            date_to=body.date_to,
        )
    except RuleApplyError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("/dry-run", response_model=RuleRunReport)
def rules_dry_run(body: RulesRunRequest, store: RulesStore = Depends(get_rules_store)):
    return _run(store, body, RunMode.DRY_RUN)


@router.post("/apply", response_model=RuleRunReport)
def rules_apply(body: RulesRunRequest, store: RulesStore = Depends(get_rules_store)):
    return _run(store, body, RunMode.APPLY)

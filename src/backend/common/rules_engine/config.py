from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from common.filtering.values import DEFAULT_SHORT_YEAR_CENTURY


class RulesEngineConfig(BaseModel):
    # Preview transactions captured per rule outcome.
    sample_limit: int = Field(default=3, ge=0)
    # Century added to `date:YY-MM` tokens; None rejects two-digit years outright.
    short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY
    uncategorised_label: str = "Uncategorised"


def load_rules_engine_config() -> RulesEngineConfig:
    """
    Build engine configuration from environment variables (a local .env is honoured):
      RULES_SAMPLE_LIMIT, RULES_SHORT_YEAR_CENTURY ("none" disables YY-MM dates),
      RULES_UNCATEGORISED_LABEL
    """
    load_dotenv()
    raw: dict[str, object] = {}

    sample_limit = os.getenv("RULES_SAMPLE_LIMIT", "").strip()
    if sample_limit:
        raw["sample_limit"] = _parse_int("RULES_SAMPLE_LIMIT", sample_limit)

    century = os.getenv("RULES_SHORT_YEAR_CENTURY", "").strip()
    if century:
        raw["short_year_century"] = None if century.lower() == "none" else _parse_int(
            "RULES_SHORT_YEAR_CENTURY", century
        )

    label = os.getenv("RULES_UNCATEGORISED_LABEL", "").strip()
    if label:
        raw["uncategorised_label"] = label

    return RulesEngineConfig.model_validate(raw)


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}.") from None

"""Source-agnostic rule application engine for transactions.

This package intentionally contains only domain logic:
- Inputs are persisted rules, saved filters, a scoped transaction batch and taxonomy names.
- No database or network calls live here; persistence is reached through a ChangeWriter.
"""

from .config import RulesEngineConfig, load_rules_engine_config
from .context import RuleContext
from .models import (
    Category,
    Rule,
    RuleOutcome,
    RuleRunReport,
    RuleRunSample,
    RunMode,
    RunSummary,
    SavedFilter,
    Tag,
    TransactionChange,
    TransactionRecord,
)
from .resolver import (
    ResolvedRule,
    RuleResolution,
    RuleResolutionError,
    RuleResolutionFailure,
    SavedFilterLookup,
    decode_tag_ids,
    encode_tag_ids,
    resolve_rule,
    resolve_rules,
)
from .runner import ChangeWriter, RuleApplyError, RulesRunner
from .saved_filters import (
    SavedFilterError,
    canonical_saved_filter,
    next_unique_saved_filter_id,
    normalize_saved_filter_id,
    slugify_saved_filter_id,
)

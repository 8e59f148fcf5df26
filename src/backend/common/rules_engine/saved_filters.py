from __future__ import annotations

import re
from typing import Iterable, Optional

from common.filtering import FilterSyntaxError, parse_strict, serialize
from common.filtering.values import DEFAULT_SHORT_YEAR_CENTURY

from .models import SavedFilter

MAX_FILTER_ID_LENGTH = 63

_VALID_ID = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class SavedFilterError(ValueError):
    pass


def normalize_saved_filter_id(raw: str) -> str:
    filter_id = (raw or "").strip().lower()
    if not filter_id:
        raise SavedFilterError("filter id is required")
    if len(filter_id) > MAX_FILTER_ID_LENGTH:
        raise SavedFilterError(f"filter id must be at most {MAX_FILTER_ID_LENGTH} characters")
    if not _VALID_ID.match(filter_id):
        raise SavedFilterError(
            "filter id must start with a letter or digit and contain only a-z, 0-9, '-' or '_'"
        )
    return filter_id


def slugify_saved_filter_id(raw: str) -> str:
    text = (raw or "").strip().lower()
    out: list[str] = []
    last_sep = False
    for ch in text:
        if ("a" <= ch <= "z") or ("0" <= ch <= "9"):
            out.append(ch)
            last_sep = False
        elif out and not last_sep:
            out.append(ch if ch in "-_" else "-")
            last_sep = True
    slug = "".join(out).strip("-_") or "filter"
    return slug[:MAX_FILTER_ID_LENGTH].rstrip("-_") or "filter"


def next_unique_saved_filter_id(existing: Iterable[SavedFilter], base: str) -> str:
    candidate = slugify_saved_filter_id(base)
    seen = {sf.id.strip().lower() for sf in existing}
    if candidate not in seen:
        return candidate
    for i in range(2, 10000):
        suffix = f"-{i}"
        nxt = candidate[: MAX_FILTER_ID_LENGTH - len(suffix)] + suffix
        if nxt not in seen:
            return nxt
    raise SavedFilterError(f"could not find a free filter id for {base!r}")


def canonical_saved_filter(
    filter_id: str,
    name: str,
    expr: str,
    *,
    short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY,
) -> SavedFilter:
    """Validate a saved filter for persistence; the expression is stored in canonical form."""
    normalized = normalize_saved_filter_id(filter_id)
    clean_name = (name or "").strip()
    if not clean_name:
        raise SavedFilterError("name is required")
    text = (expr or "").strip()
    if not text:
        raise SavedFilterError("expression is required")
    try:
        node = parse_strict(text, short_year_century=short_year_century)
    except FilterSyntaxError as exc:
        raise SavedFilterError(str(exc)) from exc
    return SavedFilter(id=normalized, name=clean_name, expr=serialize(node))

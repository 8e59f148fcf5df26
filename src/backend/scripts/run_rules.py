from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {raw!r}") from None


def _format_outcomes(report) -> List[str]:
    lines: List[str] = []
    for outcome in report.outcomes:
        label = f"[{outcome.rule_id}] {outcome.rule_name}"
        if outcome.failed:
            lines.append(f"{label}: FAILED ({outcome.error})")
            continue
        lines.append(
            f"{label} <{outcome.filter_expr}>: matched {outcome.matched}, "
            f"{outcome.category_changes} category, {outcome.tag_changes} tag change(s)"
        )
        for sample in outcome.samples:
            tags = f" +{', '.join(sample.added_tag_names)}" if sample.added_tag_names else ""
            lines.append(
                f"    {sample.posted_date.isoformat()} {sample.amount:>10} {sample.description[:40]:<40} "
                f"{sample.current_category} -> {sample.new_category}{tags}"
            )
    return lines


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run saved transaction rules over a ledger (dry run unless --apply is given)."
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL of the ledger database (defaults to LEDGER_DATABASE_URL).",
    )
    source.add_argument(
        "--fixtures",
        default=None,
        help="Path to a JSON ledger export to preview rules against (dry run only).",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Write category and tag changes instead of only previewing them.",
    )
    parser.add_argument(
        "--account-id",
        type=int,
        action="append",
        dest="account_ids",
        default=None,
        help="Restrict the run to an account id (repeatable; default: all accounts).",
    )
    parser.add_argument("--from", dest="date_from", type=_parse_date, default=None, help="First posted date (YYYY-MM-DD).")
    parser.add_argument("--to", dest="date_to", type=_parse_date, default=None, help="Last posted date (YYYY-MM-DD).")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full run report as JSON.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    _ensure_backend_on_path()

    from common.rules_engine.models import RunMode
    from common.rules_engine.runner import RuleApplyError
    from connectors.ledger_db.config import LedgerDbConfig, get_ledger_db_config
    from pipelines.rules_run import run_rules
    from pipelines.rules_store import FixturesRulesStore, SqlRulesStore

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.fixtures and args.apply:
        parser.error("--apply writes to a database; it cannot be combined with --fixtures.")
    if args.date_from and args.date_to and args.date_from > args.date_to:
        raise SystemExit("--from must be on or before --to.")

    if args.fixtures:
        store = FixturesRulesStore.from_json(Path(args.fixtures).resolve())
    else:
        config = get_ledger_db_config()
        if args.database_url:
            config = LedgerDbConfig(database_url=args.database_url, echo=config.echo)
        store = SqlRulesStore.from_config(config)

    mode = RunMode.APPLY if args.apply else RunMode.DRY_RUN
    try:
        report = run_rules(
            store,
            mode=mode,
            account_ids=args.account_ids,
            date_from=args.date_from,
            date_to=args.date_to,
        )
    except RuleApplyError as exc:
        print(f"Apply failed, nothing was written: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report.model_dump(mode="json"), indent=2))
        return 0

    prefix = "Applied" if mode == RunMode.APPLY else "Dry run"
    print(f"{prefix}: {report.summary.status_line()}")
    for line in _format_outcomes(report):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

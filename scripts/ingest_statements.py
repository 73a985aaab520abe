"""
Ingest billing statement PDFs into a project's contract ledger.

Each PDF is read, its billing facts extracted and merged into the
project's contracts in file order. Updated contracts are written back,
new ones are created. With --timeline each stored contract gets a
timeline over the configured range (LEDGER_TIMELINE_START/END unless
--start/--end are given) and its pending billing is promoted. With
--dry-run nothing is stored and the merge decisions are printed instead.

Usage:
    python scripts/ingest_statements.py --project P-001 statements/*.pdf
    python scripts/ingest_statements.py --project P-001 --view material --dry-run a.pdf
    python scripts/ingest_statements.py --project P-001 --timeline --start 2025-01 --end 2025-12 a.pdf
"""

import argparse
import json
import logging
from pathlib import Path

import sys
sys.path.append(str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.models import LedgerError
from core.observability.logging import configure_logging, get_logger
from extraction.pdf_text import extract_text
from ledger.merger import ingest_statements
from ledger.monthly import apply_timeline, generate_timeline
from reconciliation.engine import reconcile_contract
from storage.contracts_db import create_contract, init_ledger_db, list_contracts, update_contract

logger = get_logger("scripts.ingest_statements")


def main() -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Merge billing statement PDFs into the contract ledger")
    parser.add_argument("pdfs", nargs="+", type=Path, help="Statement PDF files, merged in order")
    parser.add_argument("--project", required=True, help="Project id the statements belong to")
    parser.add_argument("--view", default=None, help="Category for new contracts (labor, professional, technology, material)")
    parser.add_argument("--period", default=None, help="Fallback billing period YYYY-MM for statements without one")
    parser.add_argument("--db", type=Path, default=settings.db_path, help="SQLite database path")
    parser.add_argument("--dry-run", action="store_true", help="Print merge decisions without storing them")
    parser.add_argument("--timeline", action="store_true", help="Lay a timeline over stored contracts, promoting pending billing")
    parser.add_argument("--start", default=settings.timeline_start, help="Timeline start YYYY-MM (default from LEDGER_TIMELINE_START)")
    parser.add_argument("--end", default=settings.timeline_end, help="Timeline end YYYY-MM (default from LEDGER_TIMELINE_END)")
    parser.add_argument("--json-logs", action="store_true", default=settings.log_json, help="Emit JSON logs")
    args = parser.parse_args()

    configure_logging(
        level=getattr(logging, settings.log_level, logging.INFO),
        json_format=args.json_logs,
        force=True,
    )

    missing = [p for p in args.pdfs if not p.exists()]
    if missing:
        for path in missing:
            logger.error("Statement not found", extra_fields={"path": str(path)})
        return 1

    if args.timeline:
        try:
            generate_timeline(args.start, args.end)
        except LedgerError as e:
            logger.error("Invalid timeline range", extra_fields={"error": str(e)})
            return 2

    init_ledger_db(args.db)
    contracts = list_contracts(project_id=args.project, db_path=args.db)

    texts = [extract_text(path) for path in args.pdfs]
    result = ingest_statements(
        args.project,
        contracts,
        texts,
        view_category=args.view or settings.default_category.value,
        fallback_period=args.period,
        source_names=[path.name for path in args.pdfs],
        tax_rate=settings.default_tax_rate,
    )

    if args.dry_run:
        for instruction in result.instructions:
            print(json.dumps({
                "action": instruction.action.value,
                "supplier": instruction.contract.supplier,
                "contractId": instruction.contract_id,
                "notes": instruction.notes,
            }, ensure_ascii=False))
        for skipped in result.skipped:
            print(json.dumps({"skipped": args.pdfs[skipped.index].name, "reason": skipped.reason}, ensure_ascii=False))
        return 0

    touched = {i.matched_index for i in result.instructions if not i.is_new}
    for index, contract in enumerate(result.contracts):
        if contract.id is not None and index not in touched:
            continue
        if args.timeline:
            timeline = apply_timeline(contract, args.start, args.end)
            contract = timeline.contract
            if not timeline.verdict.is_match:
                logger.warning(
                    "Monthly billing differs from cumulative billing after timeline",
                    extra_fields={"supplier": contract.supplier, **timeline.verdict.to_dict()},
                )
        if contract.id is None:
            stored = create_contract(contract, db_path=args.db)
        else:
            stored = update_contract(contract, db_path=args.db)
        report = reconcile_contract(stored)
        print(f"{stored.id:>5}  {stored.supplier:<30} {stored.total_billing_tax_excluded:>15}  {report.status}")

    print(f"\nUpdated: {result.updated_count}  New: {result.staged_count}  Skipped: {len(result.skipped)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

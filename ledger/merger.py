"""Merge extracted statement facts into a project's contracts.

Exposes:
- merge_extraction(project_id, contracts, facts, ...) -> MergeInstruction
- ingest_statements(project_id, contracts, texts, ...) -> BatchIngestResult

Both are pure: inputs are never mutated, and persisting the returned
contracts is left to the caller.

Policies:
- A contract matches on exact supplier name within the same project; the
  first match in the given order wins. A statement without a supplier
  never matches.
- The cumulative billing total only ever grows: the stored value becomes
  max(stored, extracted).
- A period amount goes straight into the monthly ledger when the contract
  already has a timeline, otherwise it waits in pending billing until one
  is generated.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from core.models.canonical import (
    Contract,
    DEFAULT_TAX_RATE,
    ExtractedFacts,
    MonthlyLedger,
    PendingBilling,
    category_from_view,
    format_amount,
    parse_amount,
)
from core.models.results import (
    BatchIngestResult,
    MergeAction,
    MergeInstruction,
    SkippedDocument,
)
from core.observability.logging import get_logger, with_correlation
from extraction.statement_parser import extract_facts
from ledger.tax import tax_included

logger = get_logger(__name__)


def current_month() -> str:
    today = date.today()
    return f"{today.year:04d}-{today.month:02d}"


def find_matching_contract(
    project_id: str,
    contracts: Sequence[Contract],
    supplier: Optional[str],
) -> Optional[int]:
    """Index of the first contract with this supplier in this project."""
    if not supplier:
        return None
    project_id = str(project_id)
    for index, contract in enumerate(contracts):
        if contract.supplier == supplier and contract.project_id == project_id:
            return index
    return None


def _merge_into_existing(
    contract: Contract,
    index: int,
    facts: ExtractedFacts,
    fallback_period: Optional[str],
) -> MergeInstruction:
    updated = contract.model_copy(deep=True)
    notes: List[str] = []

    if facts.contract_number:
        updated.contract_number = facts.contract_number

    # Cumulative total: max(existing, extracted)
    current = parse_amount(contract.total_billing_tax_excluded) or Decimal("0")
    extracted = parse_amount(facts.cumulative_amount) or Decimal("0")
    final_total = max(current, extracted)
    cumulative_applied = extracted > current

    if cumulative_applied:
        updated.total_billing_tax_excluded = format_amount(extracted)
        notes.append(f"cumulative billing raised from {format_amount(current)} to {format_amount(extracted)}")
    elif facts.cumulative_amount is not None:
        notes.append("extracted cumulative billing not above stored total; kept")

    if final_total > 0:
        updated.total_billing_tax_included = tax_included(final_total, contract.tax_rate)

    written_month = None
    pending_month = None
    if facts.period_amount is not None:
        if contract.has_timeline():
            if facts.statement_period:
                updated.monthly_billing.set_month_value(facts.statement_period, facts.period_amount)
                written_month = facts.statement_period
                notes.append(f"period amount written to {written_month}")
            else:
                notes.append("period amount ignored: statement has no billing period")
        else:
            pending_month = facts.statement_period or fallback_period or current_month()
            updated.pending_billing = contract.pending_billing.with_entry(
                pending_month, facts.period_amount
            )
            notes.append(f"period amount staged as pending for {pending_month}")

    return MergeInstruction(
        action=MergeAction.UPDATE_EXISTING,
        contract=updated,
        matched_index=index,
        contract_id=contract.id,
        facts=facts,
        written_month=written_month,
        pending_month=pending_month,
        cumulative_applied=cumulative_applied,
        notes=notes,
    )


def _stage_new_contract(
    project_id: str,
    facts: ExtractedFacts,
    view_category: Optional[str],
    fallback_period: Optional[str],
    tax_rate,
) -> MergeInstruction:
    supplier = facts.supplier or ""
    cumulative = facts.cumulative_amount or ""
    pending = PendingBilling.none()
    pending_month = None

    if facts.period_amount is not None:
        pending_month = facts.statement_period or fallback_period or current_month()
        pending = PendingBilling.of({pending_month: facts.period_amount})

    contract = Contract(
        project_id=project_id,
        contract_name=supplier,
        supplier=supplier,
        contract_number=facts.contract_number or "",
        tax_rate=tax_rate,
        total_billing_tax_excluded=cumulative,
        total_billing_tax_included=tax_included(cumulative, tax_rate) if cumulative else "",
        category=category_from_view(view_category),
        monthly_billing=MonthlyLedger(),
        monthly_payment_tax_included=MonthlyLedger(),
        pending_billing=pending,
    )

    notes = ["no matching contract; staged new contract"]
    if pending_month:
        notes.append(f"period amount staged as pending for {pending_month}")

    return MergeInstruction(
        action=MergeAction.STAGE_NEW,
        contract=contract,
        facts=facts,
        pending_month=pending_month,
        cumulative_applied=bool(cumulative),
        notes=notes,
    )


def merge_extraction(
    project_id: str,
    contracts: Sequence[Contract],
    facts: ExtractedFacts,
    view_category: Optional[str] = None,
    fallback_period: Optional[str] = None,
    tax_rate=DEFAULT_TAX_RATE,
) -> MergeInstruction:
    """Decide how one statement's facts change a project's contracts.

    Args:
        project_id: Project the statement was uploaded to
        contracts: The project's contracts in storage order
        facts: Output of ``extract_facts``
        view_category: Category tab the upload came from ("overview" -> labor)
        fallback_period: Pending month when the statement prints no period
            (defaults to the current month)
        tax_rate: Percent rate given to a newly staged contract; matched
            contracts keep their own rate

    Returns:
        MergeInstruction describing the contract to persist
    """
    project_id = str(project_id)
    index = find_matching_contract(project_id, contracts, facts.supplier)

    with with_correlation(project_id=project_id, supplier=facts.supplier, stage="merge"):
        if index is not None:
            contract = contracts[index]
            instruction = _merge_into_existing(contract, index, facts, fallback_period)
            with with_correlation(contract_id=contract.id):
                logger.info(
                    "Updated existing contract",
                    extra_fields={
                        "cumulative_applied": instruction.cumulative_applied,
                        "written_month": instruction.written_month,
                        "pending_month": instruction.pending_month,
                    },
                )
        else:
            instruction = _stage_new_contract(
                project_id, facts, view_category, fallback_period, Decimal(str(tax_rate))
            )
            logger.info(
                "Staged new contract",
                extra_fields={
                    "category": instruction.contract.category.value,
                    "pending_month": instruction.pending_month,
                },
            )

    return instruction


def ingest_statements(
    project_id: str,
    contracts: Sequence[Contract],
    texts: Iterable[str],
    view_category: Optional[str] = None,
    fallback_period: Optional[str] = None,
    source_names: Optional[Sequence[str]] = None,
    tax_rate=DEFAULT_TAX_RATE,
) -> BatchIngestResult:
    """Merge a batch of statement texts in order.

    Each merge sees the contracts produced by the ones before it, so two
    statements from a new supplier create one contract, not two.
    Statements without a supplier are skipped.
    """
    working: List[Contract] = [c.model_copy(deep=True) for c in contracts]
    instructions: List[MergeInstruction] = []
    skipped: List[SkippedDocument] = []

    for position, text in enumerate(texts):
        name = None
        if source_names is not None and position < len(source_names):
            name = source_names[position]

        with with_correlation(project_id=str(project_id), source_document=name):
            facts = extract_facts(text)
            if not facts.supplier:
                logger.warning(
                    "Statement skipped: no supplier recognised",
                    extra_fields={"index": position, "fields": facts.found_fields()},
                )
                skipped.append(SkippedDocument(index=position, reason="supplier not found", facts=facts))
                continue

            instruction = merge_extraction(
                project_id,
                working,
                facts,
                view_category=view_category,
                fallback_period=fallback_period,
                tax_rate=tax_rate,
            )

        if instruction.matched_index is not None:
            working[instruction.matched_index] = instruction.contract
        else:
            working.append(instruction.contract)
        instructions.append(instruction)

    logger.info(
        "Batch ingestion complete",
        extra_fields={
            "project_id": str(project_id),
            "updated": sum(1 for i in instructions if not i.is_new),
            "staged": sum(1 for i in instructions if i.is_new),
            "skipped": len(skipped),
        },
    )
    return BatchIngestResult(contracts=working, instructions=instructions, skipped=skipped)

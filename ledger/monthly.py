"""Monthly ledger timeline generation.

A timeline is the contiguous run of calendar months a contract's ledger is
indexed by. Generating one is the only way pending billing (amounts
extracted before the contract had a timeline) reaches the ledger.
"""

from typing import Dict, List, Tuple

from core.models.canonical import (
    Contract,
    LedgerError,
    MonthlyLedger,
    PendingBilling,
    validate_month,
)
from core.models.results import TimelineResult
from core.observability.logging import get_logger, with_correlation
from reconciliation.engine import check_billing_total

logger = get_logger(__name__)


class InvalidTimeRangeError(LedgerError):
    """Timeline start month falls after its end month."""
    def __init__(self, start: str, end: str):
        super().__init__(f"Timeline start {start} is after end {end}")
        self.start = start
        self.end = end


def _next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def generate_timeline(start: str, end: str) -> List[str]:
    """Every month key from ``start`` to ``end`` inclusive, oldest first.

    Raises:
        InvalidMonthError: either bound is not ``YYYY-MM``
        InvalidTimeRangeError: ``start`` is after ``end``
    """
    first = validate_month(start)
    last = validate_month(end)
    if first > last:
        raise InvalidTimeRangeError(start, end)

    months = []
    current = first
    while current <= last:
        months.append(f"{current[0]:04d}-{current[1]:02d}")
        current = _next_month(*current)
    return months


def apply_timeline(contract: Contract, start: str, end: str) -> TimelineResult:
    """Lay a timeline over a contract's ledgers and fold in pending billing.

    For each month in range the billing value is the existing non-blank
    ledger value, else the pending value, else blank. Months already in the
    ledger but outside the range are kept. Payment months are added blank
    where missing. Pending billing is cleared whatever happens to it.

    Cumulative totals are left alone; the returned verdict tells the caller
    whether they still agree with the ledger.
    """
    months = generate_timeline(start, end)
    pending: Dict[str, str] = dict(contract.pending_billing.entries)

    with with_correlation(project_id=contract.project_id, contract_id=contract.id,
                          supplier=contract.supplier or None, stage="timeline"):
        billing = dict(contract.monthly_billing.entries)
        payment = dict(contract.monthly_payment_tax_included.entries)
        filled: List[str] = []

        for month in months:
            existing = billing.get(month, "")
            if existing.strip():
                continue
            if pending.get(month, "").strip():
                billing[month] = pending[month]
                filled.append(month)
            else:
                billing[month] = existing

        for month in months:
            payment.setdefault(month, "")

        discarded = {month: amount for month, amount in pending.items() if month not in months}
        if discarded:
            logger.warning(
                "Pending billing outside timeline discarded",
                extra_fields={"months": sorted(discarded), "start": start, "end": end},
            )

        updated = contract.model_copy(deep=True)
        updated.monthly_billing = MonthlyLedger.from_mapping(billing)
        updated.monthly_payment_tax_included = MonthlyLedger.from_mapping(payment)
        updated.pending_billing = PendingBilling.none()

        verdict = check_billing_total(updated.monthly_billing, updated.total_billing_tax_excluded)

        logger.info(
            "Timeline generated",
            extra_fields={
                "start": start,
                "end": end,
                "months": len(months),
                "filled_from_pending": len(filled),
                "is_match": verdict.is_match,
            },
        )

    return TimelineResult(
        contract=updated,
        months=months,
        filled_from_pending=filled,
        discarded_pending=discarded,
        verdict=verdict,
    )

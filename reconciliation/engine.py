"""Reconciliation engine for contract ledgers.

Exposes high-level functions:
- check_billing_total(ledger, stored_total) -> ReconciliationVerdict
- sync_billing_total(contract) -> Contract
- check_tax_consistency(contract) -> List[CheckResult]
- reconcile_contract(contract) -> ContractReconciliationReport

The monthly billing ledger and the stored cumulative total are kept
independently; a mismatch is reported, never corrected behind the user's
back. ``sync_billing_total`` is the explicit recovery action.
"""

from decimal import Decimal, localcontext
from enum import Enum
from typing import Dict, List, Optional

from core.models.canonical import Contract, MonthlyLedger, amount_context, format_amount, parse_amount
from core.models.results import ContractReconciliationReport, ReconciliationVerdict
from core.observability.logging import get_logger, with_correlation
from ledger.tax import tax_excluded, tax_included

logger = get_logger(__name__)


# =============================================================================
# Configuration & Data Structures
# =============================================================================

AMOUNT_TOLERANCE = Decimal("0.01")


class Severity(str, Enum):
    WARN = "WARN"
    INFO = "INFO"


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"


class CheckResult:
    """Result of a single reconciliation check."""

    def __init__(
        self,
        check_id: str,
        severity: Severity,
        passed: bool,
        message: str,
        evidence: Optional[Dict] = None,
    ):
        self.check_id = check_id
        self.severity = severity
        self.passed = passed
        self.message = message
        self.evidence = evidence or {}

    def to_dict(self) -> Dict:
        return {
            "check_id": self.check_id,
            "severity": self.severity.value,
            "passed": self.passed,
            "message": self.message,
            "evidence": self.evidence,
        }


# =============================================================================
# Utility Functions
# =============================================================================

def amounts_match(
    a: Optional[Decimal],
    b: Optional[Decimal],
    tolerance: Decimal = AMOUNT_TOLERANCE,
) -> bool:
    """Check if two amounts match within tolerance."""
    if a is None or b is None:
        return False
    return abs(a - b) <= tolerance


# =============================================================================
# Billing Total
# =============================================================================

def check_billing_total(ledger: MonthlyLedger, stored_total: str) -> ReconciliationVerdict:
    """Compare the monthly billing sum with the stored cumulative total.

    A blank or unparseable stored total counts as zero.
    """
    calculated = ledger.sum()
    stored = parse_amount(stored_total)
    if stored is None:
        stored = Decimal("0")
    with localcontext(amount_context()):
        difference = calculated - stored
    return ReconciliationVerdict(
        calculated=calculated,
        stored=stored,
        difference=difference,
        is_match=abs(difference) <= AMOUNT_TOLERANCE,
    )


def sync_billing_total(contract: Contract) -> Contract:
    """Overwrite the stored cumulative billing with the monthly sum.

    The tax-included counterpart is recomputed with the contract's rate.
    A non-positive sum blanks both totals. Returns an updated copy.
    """
    calculated = contract.monthly_billing.sum()
    updated = contract.model_copy(deep=True)
    if calculated > 0:
        updated.total_billing_tax_excluded = format_amount(calculated)
        updated.total_billing_tax_included = tax_included(calculated, contract.tax_rate)
    else:
        updated.total_billing_tax_excluded = ""
        updated.total_billing_tax_included = ""

    with with_correlation(project_id=contract.project_id, contract_id=contract.id, stage="sync"):
        logger.info(
            "Cumulative billing synced to monthly ledger",
            extra_fields={
                "previous": contract.total_billing_tax_excluded,
                "synced": updated.total_billing_tax_excluded,
            },
        )
    return updated


# =============================================================================
# Individual Check Functions
# =============================================================================

def check_billing_ledger(contract: Contract) -> CheckResult:
    """Monthly billing ledger agrees with the stored cumulative total."""
    verdict = check_billing_total(contract.monthly_billing, contract.total_billing_tax_excluded)
    evidence = verdict.to_dict()

    if verdict.is_match:
        return CheckResult(
            check_id="BILLING_TOTAL",
            severity=Severity.INFO,
            passed=True,
            message="Monthly billing matches cumulative billing",
            evidence=evidence,
        )

    return CheckResult(
        check_id="BILLING_TOTAL",
        severity=Severity.WARN,
        passed=False,
        message=(
            f"Monthly billing total {evidence['calculated']} differs from "
            f"cumulative billing {evidence['stored']} by {evidence['difference']}"
        ),
        evidence=evidence,
    )


def _check_derived(
    check_id: str,
    label: str,
    source: str,
    derived: str,
    expected: str,
) -> CheckResult:
    source_value = parse_amount(source)
    if source_value is None or source_value <= 0:
        return CheckResult(
            check_id=check_id,
            severity=Severity.INFO,
            passed=True,
            message=f"No {label} to check",
            evidence={"source": source, "derived": derived},
        )

    derived_value = parse_amount(derived)
    expected_value = parse_amount(expected)
    evidence = {"source": source, "derived": derived, "expected": expected}

    if derived_value is None:
        return CheckResult(
            check_id=check_id,
            severity=Severity.WARN,
            passed=False,
            message=f"{label} has no derived counterpart (expected {expected})",
            evidence=evidence,
        )

    if amounts_match(derived_value, expected_value):
        return CheckResult(
            check_id=check_id,
            severity=Severity.INFO,
            passed=True,
            message=f"{label} consistent with tax rate",
            evidence=evidence,
        )

    return CheckResult(
        check_id=check_id,
        severity=Severity.WARN,
        passed=False,
        message=f"{label} derived value {derived} differs from expected {expected}",
        evidence=evidence,
    )


def check_tax_consistency(contract: Contract) -> List[CheckResult]:
    """Derived tax amounts agree with their authoritative sides.

    Billing: included is derived from excluded.
    Payment: excluded is derived from included.
    """
    rate = contract.tax_rate
    return [
        _check_derived(
            "BILLING_TAX",
            "Cumulative billing",
            contract.total_billing_tax_excluded,
            contract.total_billing_tax_included,
            tax_included(contract.total_billing_tax_excluded, rate),
        ),
        _check_derived(
            "PAYMENT_TAX",
            "Cumulative payment",
            contract.total_payment_tax_included,
            contract.total_payment_tax_excluded,
            tax_excluded(contract.total_payment_tax_included, rate),
        ),
    ]


def check_pending_billing(contract: Contract) -> CheckResult:
    """Pending billing is waiting for a timeline."""
    if contract.pending_billing.has_pending:
        months = sorted(contract.pending_billing.entries)
        return CheckResult(
            check_id="PENDING_BILLING",
            severity=Severity.WARN,
            passed=False,
            message=f"{len(months)} month(s) of billing waiting for a timeline",
            evidence={"months": months},
        )
    return CheckResult(
        check_id="PENDING_BILLING",
        severity=Severity.INFO,
        passed=True,
        message="No pending billing",
    )


# =============================================================================
# Main Reconciliation Function
# =============================================================================

def reconcile_contract(contract: Contract) -> ContractReconciliationReport:
    """Run every consistency check for one contract.

    Status is WARN if any check failed, PASS otherwise.
    """
    verdict = check_billing_total(contract.monthly_billing, contract.total_billing_tax_excluded)

    checks: List[CheckResult] = [check_billing_ledger(contract)]
    checks.extend(check_tax_consistency(contract))
    checks.append(check_pending_billing(contract))

    failed = [c for c in checks if not c.passed]
    status = CheckStatus.WARN if failed else CheckStatus.PASS

    with with_correlation(project_id=contract.project_id, contract_id=contract.id,
                          supplier=contract.supplier or None, stage="reconcile"):
        if failed:
            logger.warning(
                "Contract reconciliation found divergences",
                extra_fields={"failed_checks": [c.check_id for c in failed]},
            )
        else:
            logger.debug("Contract reconciliation passed")

    return ContractReconciliationReport(
        contract_id=contract.id,
        supplier=contract.supplier,
        status=status.value,
        verdict=verdict,
        checks=[c.to_dict() for c in checks],
    )

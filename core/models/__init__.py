"""Core data models - contract ledger records.

This package contains the canonical ledger entities and the result
records returned by the reconciliation engine.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DEFAULT_TAX_RATE,

    # Errors
    LedgerError,
    InvalidMonthError,

    # Value helpers
    parse_amount,
    format_amount,
    amount_context,
    MAX_AMOUNT_EXPONENT,
    is_month_key,
    validate_month,

    # Entities
    Category,
    category_from_view,
    ExtractedFacts,
    MonthlyLedger,
    PendingBilling,
    Contract,
)

from core.models.results import (
    MergeAction,
    MergeInstruction,
    ReconciliationVerdict,
    TimelineResult,
    SkippedDocument,
    BatchIngestResult,
    ContractReconciliationReport,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DEFAULT_TAX_RATE",

    # Errors
    "LedgerError",
    "InvalidMonthError",

    # Value helpers
    "parse_amount",
    "format_amount",
    "amount_context",
    "MAX_AMOUNT_EXPONENT",
    "is_month_key",
    "validate_month",

    # Entities
    "Category",
    "category_from_view",
    "ExtractedFacts",
    "MonthlyLedger",
    "PendingBilling",
    "Contract",

    # Results
    "MergeAction",
    "MergeInstruction",
    "ReconciliationVerdict",
    "TimelineResult",
    "SkippedDocument",
    "BatchIngestResult",
    "ContractReconciliationReport",
]

"""
Observability Module for the Contract Ledger

Provides:
- Structured logging with correlation IDs (project, contract, supplier, document)
"""

from core.observability.logging import (
    configure_logging,
    get_logger,
    CorrelationContext,
    get_correlation_context,
    with_correlation,
    StructuredFormatter,
    HumanReadableFormatter,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "CorrelationContext",
    "get_correlation_context",
    "with_correlation",
    "StructuredFormatter",
    "HumanReadableFormatter",
]

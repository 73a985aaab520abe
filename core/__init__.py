"""Core module - contract ledger records, configuration and logging.

This module contains the canonical ledger models, settings and the
observability helpers shared by extraction, ledger, reconciliation and
storage. It holds no business rules itself.
"""

__version__ = "1.0.0"

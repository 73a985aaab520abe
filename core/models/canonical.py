"""Core canonical data models - contract ledger entities.

These models are the plain structured records exchanged with the
persistence boundary. Field names serialize as camelCase aliases
(``totalBillingTaxExcluded``, ``monthlyBilling`` ...) so records written by
the ledger UI and by this package are interchangeable.

Monetary amounts are kept as decimal strings (comma thousands separators
allowed). Amount parsing and two-decimal formatting live here; tax
arithmetic lives in ``ledger.tax``.
"""

from __future__ import annotations

import decimal
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


MONTH_KEY_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

DEFAULT_TAX_RATE = 9

TWO_PLACES = Decimal("0.01")

# Non-zero amounts of 10**100 or more, or below 10**-99, are treated as
# non-numeric.
MAX_AMOUNT_EXPONENT = 99

# Working precision for amount arithmetic; covers the largest accepted
# amount plus its two decimals with room to spare.
AMOUNT_PRECISION = 2 * (MAX_AMOUNT_EXPONENT + 1) + 10


class LedgerError(ValueError):
    """Base exception for rejected ledger operations."""
    pass


class InvalidMonthError(LedgerError):
    """A month key is not of the form YYYY-MM."""
    def __init__(self, month: object):
        super().__init__(f"Invalid month: {month!r} (expected YYYY-MM)")
        self.month = month


# =============================================================================
# Value Parsers
# =============================================================================

def parse_amount(value) -> Optional[Decimal]:
    """Parse an amount string such as ``"1,234.50"`` into a Decimal.

    Returns None for blanks and anything non-numeric (including NaN,
    Infinity and magnitudes outside MAX_AMOUNT_EXPONENT) instead of raising.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    else:
        if isinstance(value, (int, float)):
            value = str(value)
        if not isinstance(value, str):
            return None
        s = value.strip().replace(",", "")
        if s == "":
            return None
        try:
            parsed = Decimal(s)
        except InvalidOperation:
            return None
    if not parsed.is_finite():
        return None
    if parsed and abs(parsed.adjusted()) > MAX_AMOUNT_EXPONENT:
        return None
    return parsed


def amount_context() -> decimal.Context:
    """Decimal context wide enough for sums and products of parsed amounts."""
    return decimal.Context(prec=AMOUNT_PRECISION, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Fixed two-decimal rendering used for every computed amount.

    Returns ``""`` for NaN or Infinity.
    """
    if not value.is_finite():
        return ""
    with decimal.localcontext(amount_context()) as ctx:
        # Integer digits plus the two decimals must fit the precision.
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        quantized = value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if quantized == 0:
        quantized = abs(quantized)
    return f"{quantized:f}"


def is_month_key(value: str) -> bool:
    """Return True for a well-formed ``YYYY-MM`` key."""
    return isinstance(value, str) and MONTH_KEY_RE.match(value) is not None


def validate_month(month: str) -> Tuple[int, int]:
    """Split a ``YYYY-MM`` key into (year, month) or raise InvalidMonthError."""
    if not isinstance(month, str):
        raise InvalidMonthError(month)
    match = MONTH_KEY_RE.match(month.strip())
    if not match:
        raise InvalidMonthError(month)
    return int(match.group(1)), int(match.group(2))


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical ledger records."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# =============================================================================
# Enumerations
# =============================================================================

class Category(str, Enum):
    """Contract category shown as a tab in the ledger."""
    LABOR = "labor"                  # labour subcontract
    PROFESSIONAL = "professional"    # specialist subcontract
    TECHNOLOGY = "technology"        # technical services
    MATERIAL = "material"            # material / equipment lease


OVERVIEW_VIEW = "overview"


def category_from_view(view: Optional[str]) -> Category:
    """Resolve the category implied by the caller's current view.

    The overview tab (or no view at all) defaults to labor.
    """
    if not view or view == OVERVIEW_VIEW:
        return Category.LABOR
    try:
        return Category(view)
    except ValueError:
        return Category.LABOR


# =============================================================================
# Extraction
# =============================================================================

class ExtractedFacts(CanonicalBase):
    """Financial facts pulled from one billing statement.

    Every field is optional; a pattern that does not match simply leaves
    its field unset. Amounts keep the document's own formatting.
    """
    supplier: Optional[str] = None
    contract_number: Optional[str] = Field(default=None, description="Statement number")
    statement_period: Optional[str] = Field(default=None, description="YYYY-MM")
    period_amount: Optional[str] = None
    year_to_date_amount: Optional[str] = None
    cumulative_amount: Optional[str] = None

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())

    def found_fields(self) -> List[str]:
        return [name for name, value in self.model_dump().items() if value is not None]


# =============================================================================
# Monthly Ledger
# =============================================================================

class MonthlyLedger(CanonicalBase):
    """Sparse mapping from calendar month (``YYYY-MM``) to an amount string.

    Iteration is always chronological regardless of insertion order.
    A ledger with any key at all (even blank ones) counts as having a
    timeline.
    """
    entries: Dict[str, str] = Field(default_factory=dict)

    @field_validator("entries", mode="before")
    @classmethod
    def _validate_keys(cls, value):
        # Stored records may carry null or numeric amounts.
        if not isinstance(value, dict):
            return value
        for key in value:
            if not is_month_key(key):
                raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
        return {key: ("" if amount is None else str(amount)) for key, amount in value.items()}

    @classmethod
    def from_mapping(cls, mapping: Optional[Dict[str, str]]) -> "MonthlyLedger":
        return cls(entries=dict(mapping or {}))

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, month: str) -> bool:
        return month in self.entries

    def is_empty(self) -> bool:
        return not self.entries

    def months(self) -> List[str]:
        return sorted(self.entries)

    def items(self) -> List[Tuple[str, str]]:
        return [(month, self.entries[month]) for month in self.months()]

    def get(self, month: str, default: str = "") -> str:
        return self.entries.get(month, default)

    def filled_months(self) -> List[str]:
        """Months holding a non-blank value."""
        return [month for month, amount in self.items() if amount.strip()]

    def set_month_value(self, month: str, amount: str) -> None:
        """Overwrite a single month. Cumulative totals are not touched."""
        validate_month(month)
        self.entries[month.strip()] = "" if amount is None else str(amount)

    def sum(self) -> Decimal:
        """Total of all parseable entries; blanks and junk are skipped."""
        total = Decimal("0")
        with decimal.localcontext(amount_context()):
            for _, amount in self.items():
                value = parse_amount(amount)
                if value is not None:
                    total += value
        return total

    def to_dict(self) -> Dict[str, str]:
        return dict(self.items())


class PendingBilling(CanonicalBase):
    """Period amounts extracted before the contract had a timeline.

    Closed tagged variant: ``{hasPending: false}`` or
    ``{hasPending: true, entries: {...}}``.
    """
    has_pending: bool = False
    entries: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_tag(self) -> "PendingBilling":
        for key in self.entries:
            if not is_month_key(key):
                raise ValueError(f"Invalid pending month key: {key!r}")
        if self.has_pending != bool(self.entries):
            raise ValueError("has_pending must be true exactly when entries are present")
        return self

    @classmethod
    def none(cls) -> "PendingBilling":
        return cls()

    @classmethod
    def of(cls, entries: Dict[str, str]) -> "PendingBilling":
        return cls(has_pending=bool(entries), entries=dict(entries))

    def with_entry(self, month: str, amount: str) -> "PendingBilling":
        """New variant with ``month`` added; earlier entries are kept."""
        merged = dict(self.entries)
        merged[month] = amount
        return PendingBilling.of(merged)


# =============================================================================
# Contract
# =============================================================================

class Contract(CanonicalBase):
    """A subcontract tracked in a project's ledger."""
    id: Optional[str] = Field(default=None, description="Assigned by persistence")
    project_id: str
    contract_name: str = ""
    supplier: str = ""
    contract_number: str = ""
    contract_amount: str = ""
    bid_method: str = ""
    sign_date: str = ""
    tax_rate: Decimal = Field(default=Decimal(DEFAULT_TAX_RATE), description="Percent")
    total_billing_tax_excluded: str = ""
    total_billing_tax_included: str = ""
    total_payment_tax_excluded: str = ""
    total_payment_tax_included: str = ""
    payment_ratio: str = ""
    category: Category = Category.LABOR
    monthly_billing: MonthlyLedger = Field(default_factory=MonthlyLedger)
    monthly_payment_tax_included: MonthlyLedger = Field(default_factory=MonthlyLedger)
    pending_billing: PendingBilling = Field(default_factory=PendingBilling)
    created_at: Optional[datetime] = None

    @field_validator("id", "project_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value):
        if value is None:
            return None
        return str(value)

    @field_validator("tax_rate", mode="before")
    @classmethod
    def _default_tax_rate(cls, value):
        # Stored rows may carry 0/NULL; the ledger treats that as the default.
        if value in (None, "", 0, "0"):
            return Decimal(DEFAULT_TAX_RATE)
        return value

    @field_validator("monthly_billing", "monthly_payment_tax_included", mode="before")
    @classmethod
    def _coerce_ledger(cls, value):
        if value is None:
            return MonthlyLedger()
        if isinstance(value, dict) and "entries" not in value:
            return MonthlyLedger.from_mapping(value)
        return value

    @field_validator(
        "contract_name", "supplier", "contract_number", "contract_amount",
        "bid_method", "sign_date", "total_billing_tax_excluded",
        "total_billing_tax_included", "total_payment_tax_excluded",
        "total_payment_tax_included", "payment_ratio",
        mode="before",
    )
    @classmethod
    def _none_to_blank(cls, value):
        return "" if value is None else str(value)

    def has_timeline(self) -> bool:
        return not self.monthly_billing.is_empty()

    def to_record(self) -> dict:
        """Plain record for the persistence boundary (camelCase, ledgers flattened)."""
        record = self.model_dump(mode="json", by_alias=True)
        record["monthlyBilling"] = self.monthly_billing.to_dict()
        record["monthlyPaymentTaxIncluded"] = self.monthly_payment_tax_included.to_dict()
        return record

"""Tax arithmetic over ledger amount strings.

All functions are total: they accept the strings users type (comma
thousands separators allowed) and return a fixed two-decimal string, or
``""`` when an operand is not a number. Rounding is ROUND_HALF_UP so the
same inputs always render to the same characters.

Arithmetic runs in ``amount_context()``, so any amount ``parse_amount``
accepts is computed exactly to two decimals.
"""

from decimal import Decimal, DivisionByZero, InvalidOperation, localcontext
from typing import Optional

from core.models.canonical import amount_context, format_amount, parse_amount

__all__ = [
    "parse_amount",
    "format_amount",
    "tax_multiplier",
    "tax_included",
    "tax_excluded",
    "payment_ratio",
]

HUNDRED = Decimal("100")


def tax_multiplier(rate) -> Optional[Decimal]:
    """``1 + rate/100`` for a percent rate, or None if the rate is unusable."""
    parsed = parse_amount(rate)
    if parsed is None:
        return None
    with localcontext(amount_context()):
        return Decimal("1") + parsed / HUNDRED


def tax_included(excluded, rate) -> str:
    """Tax-inclusive amount from a tax-exclusive one: ``excluded * (1 + rate/100)``."""
    amount = parse_amount(excluded)
    multiplier = tax_multiplier(rate)
    if amount is None or multiplier is None:
        return ""
    with localcontext(amount_context()):
        return format_amount(amount * multiplier)


def tax_excluded(included, rate) -> str:
    """Tax-exclusive amount from a tax-inclusive one: ``included / (1 + rate/100)``."""
    amount = parse_amount(included)
    multiplier = tax_multiplier(rate)
    if amount is None or multiplier is None:
        return ""
    try:
        with localcontext(amount_context()):
            return format_amount(amount / multiplier)
    except (DivisionByZero, InvalidOperation):
        return ""


def payment_ratio(payment, contract_amount) -> str:
    """Payment as a percentage of the contract amount.

    Blank when either side is missing, zero or negative.
    """
    paid = parse_amount(payment)
    amount = parse_amount(contract_amount)
    if paid is None or amount is None:
        return ""
    if paid <= 0 or amount <= 0:
        return ""
    with localcontext(amount_context()):
        return format_amount(paid / amount * HUNDRED)

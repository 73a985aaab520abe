"""Contract edits made from the ledger screen.

Every function returns an updated copy and leaves its input alone.

Billing and payment ledgers follow different policies:
- Editing a billing month never touches the cumulative billing totals;
  the user reconciles them explicitly (``reconciliation.engine.sync_billing_total``).
- Editing a payment month recomputes the payment totals and the payment
  ratio straight away.
"""

from decimal import Decimal, localcontext
from typing import Optional

from pydantic import Field

from core.models.canonical import (
    CanonicalBase,
    Category,
    Contract,
    DEFAULT_TAX_RATE,
    amount_context,
    category_from_view,
    format_amount,
    parse_amount,
)
from core.observability.logging import get_logger, with_correlation
from ledger.tax import payment_ratio, tax_excluded, tax_included

logger = get_logger(__name__)


class ContractTemplate(CanonicalBase):
    """Reusable starting point for new contracts."""
    name: str
    contract_name: str = ""
    supplier: str = ""
    contract_number: str = ""
    contract_amount: str = ""
    bid_method: str = ""
    sign_date: str = ""
    tax_rate: Decimal = Field(default=Decimal(DEFAULT_TAX_RATE))
    category: Category = Category.LABOR


def new_contract(
    project_id: str,
    contract_name: str = "",
    supplier: str = "",
    view_category: Optional[str] = None,
    **fields,
) -> Contract:
    """Blank contract in a project; category follows the current view."""
    fields.setdefault("category", category_from_view(view_category))
    return Contract(
        project_id=project_id,
        contract_name=contract_name,
        supplier=supplier,
        **fields,
    )


def apply_template(
    template: ContractTemplate,
    project_id: str,
    contract: Optional[Contract] = None,
) -> Contract:
    """Fill a contract's descriptive fields from a template.

    Ledgers and totals of an existing contract are kept.
    """
    base = contract.model_copy(deep=True) if contract else Contract(project_id=project_id)
    base.project_id = str(project_id)
    base.contract_name = template.contract_name
    base.supplier = template.supplier
    base.contract_number = template.contract_number
    base.contract_amount = template.contract_amount
    base.bid_method = template.bid_method
    base.sign_date = template.sign_date
    base.tax_rate = template.tax_rate or Decimal(DEFAULT_TAX_RATE)
    base.category = template.category
    return base


def set_monthly_billing(contract: Contract, month: str, amount: str) -> Contract:
    """Overwrite one billing month; cumulative billing is not recomputed."""
    updated = contract.model_copy(deep=True)
    updated.monthly_billing.set_month_value(month, amount)
    with with_correlation(project_id=contract.project_id, contract_id=contract.id, stage="edit"):
        logger.debug("Monthly billing updated", extra_fields={"month": month, "amount": amount})
    return updated


def set_monthly_payment(contract: Contract, month: str, amount: str) -> Contract:
    """Overwrite one payment month and recompute payment totals and ratio."""
    updated = contract.model_copy(deep=True)
    updated.monthly_payment_tax_included.set_month_value(month, amount)

    total_included = updated.monthly_payment_tax_included.sum()
    updated.total_payment_tax_included = format_amount(total_included)
    updated.total_payment_tax_excluded = tax_excluded(total_included, updated.tax_rate)

    amount_value = parse_amount(updated.contract_amount)
    if amount_value is not None and amount_value > 0:
        with localcontext(amount_context()):
            updated.payment_ratio = format_amount(total_included / amount_value * 100)
    else:
        updated.payment_ratio = ""

    with with_correlation(project_id=contract.project_id, contract_id=contract.id, stage="edit"):
        logger.debug(
            "Monthly payment updated",
            extra_fields={
                "month": month,
                "total_payment_tax_included": updated.total_payment_tax_included,
                "payment_ratio": updated.payment_ratio,
            },
        )
    return updated


def recompute_derived_fields(contract: Contract) -> Contract:
    """Refresh derived amounts from their authoritative sides before saving.

    - billing: tax-included from tax-excluded
    - payment: tax-excluded from tax-included
    - payment ratio from payment tax-included and contract amount

    Each is only recomputed when its source is a positive number.
    """
    updated = contract.model_copy(deep=True)
    rate = updated.tax_rate

    billing_excluded = parse_amount(updated.total_billing_tax_excluded)
    if billing_excluded is not None and billing_excluded > 0:
        updated.total_billing_tax_included = tax_included(billing_excluded, rate)

    payment_included = parse_amount(updated.total_payment_tax_included)
    if payment_included is not None and payment_included > 0:
        updated.total_payment_tax_excluded = tax_excluded(payment_included, rate)

    ratio = payment_ratio(updated.total_payment_tax_included, updated.contract_amount)
    if ratio:
        updated.payment_ratio = ratio

    return updated

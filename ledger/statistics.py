"""Portfolio totals for the ledger dashboard."""

from decimal import Decimal
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field

from core.models.canonical import OVERVIEW_VIEW, Category, Contract, format_amount, parse_amount


class CategoryTotals(BaseModel):
    count: int = 0
    amount: Decimal = Decimal("0")
    billing: Decimal = Decimal("0")
    payment: Decimal = Decimal("0")

    def to_dict(self) -> Dict:
        return {
            "count": self.count,
            "amount": format_amount(self.amount),
            "billing": format_amount(self.billing),
            "payment": format_amount(self.payment),
        }


class ContractStatistics(BaseModel):
    """Totals over a set of contracts.

    Billing and payment are the tax-included cumulative figures.
    """
    total_contracts: int = 0
    total_contract_amount: Decimal = Decimal("0")
    total_billing: Decimal = Decimal("0")
    total_payment: Decimal = Decimal("0")
    by_category: Dict[Category, CategoryTotals] = Field(
        default_factory=lambda: {category: CategoryTotals() for category in Category}
    )

    def to_dict(self) -> Dict:
        return {
            "totalContracts": self.total_contracts,
            "totalContractAmount": format_amount(self.total_contract_amount),
            "totalBilling": format_amount(self.total_billing),
            "totalPayment": format_amount(self.total_payment),
            "byCategory": {
                category.value: totals.to_dict() for category, totals in self.by_category.items()
            },
        }


def _amount(value: str) -> Decimal:
    parsed = parse_amount(value)
    return parsed if parsed is not None else Decimal("0")


def summarize_contracts(
    contracts: Iterable[Contract],
    category: Optional[str] = None,
) -> ContractStatistics:
    """Sum contract amounts, billing and payment, overall and per category.

    ``category`` restricts the summary to one tab; None or "overview"
    covers every contract. Unparseable amounts count as zero.
    """
    selected = None
    if category and category != OVERVIEW_VIEW:
        selected = Category(category)

    stats = ContractStatistics()
    for contract in contracts:
        if selected is not None and contract.category != selected:
            continue

        amount = _amount(contract.contract_amount)
        billing = _amount(contract.total_billing_tax_included)
        payment = _amount(contract.total_payment_tax_included)

        stats.total_contracts += 1
        stats.total_contract_amount += amount
        stats.total_billing += billing
        stats.total_payment += payment

        bucket = stats.by_category[contract.category]
        bucket.count += 1
        bucket.amount += amount
        bucket.billing += billing
        bucket.payment += payment

    return stats

"""
Contract Edit and Statistics Tests

Validates:
1. Billing edits leave cumulative totals alone (manual sync policy)
2. Payment edits recompute payment totals and ratio
3. Pre-save derived field recomputation
4. Templates and new contracts
5. Portfolio statistics per category
"""

from decimal import Decimal

import pytest

from core.models import Category, Contract, MonthlyLedger
from ledger.contract_ops import (
    ContractTemplate,
    apply_template,
    new_contract,
    recompute_derived_fields,
    set_monthly_billing,
    set_monthly_payment,
)
from ledger.statistics import summarize_contracts


@pytest.fixture
def contract():
    return Contract(
        id="3",
        project_id="P-001",
        supplier="ACME",
        contract_amount="10,000",
        total_billing_tax_excluded="500",
        total_billing_tax_included="545.00",
        monthly_billing=MonthlyLedger.from_mapping({"2025-01": "500", "2025-02": ""}),
        monthly_payment_tax_included=MonthlyLedger.from_mapping({"2025-01": "1090", "2025-02": ""}),
    )


class TestMonthlyEdits:

    def test_billing_edit_keeps_totals(self, contract):
        updated = set_monthly_billing(contract, "2025-02", "300")
        assert updated.monthly_billing.get("2025-02") == "300"
        assert updated.total_billing_tax_excluded == "500"
        assert contract.monthly_billing.get("2025-02") == ""

    def test_payment_edit_recomputes(self, contract):
        updated = set_monthly_payment(contract, "2025-02", "1,090")
        assert updated.total_payment_tax_included == "2180.00"
        assert updated.total_payment_tax_excluded == "2000.00"
        assert updated.payment_ratio == "21.80"

    def test_payment_ratio_blank_without_amount(self, contract):
        no_amount = contract.model_copy(update={"contract_amount": ""})
        updated = set_monthly_payment(no_amount, "2025-02", "10")
        assert updated.payment_ratio == ""


class TestRecomputeDerivedFields:

    def test_all_derived_fields(self):
        contract = Contract(
            project_id="P",
            contract_amount="20000",
            total_billing_tax_excluded="1000",
            total_billing_tax_included="",
            total_payment_tax_included="2,180",
            total_payment_tax_excluded="",
        )
        updated = recompute_derived_fields(contract)
        assert updated.total_billing_tax_included == "1090.00"
        assert updated.total_payment_tax_excluded == "2000.00"
        assert updated.payment_ratio == "10.90"

    def test_non_positive_sources_left_alone(self):
        contract = Contract(
            project_id="P",
            total_billing_tax_excluded="0",
            total_billing_tax_included="12",
            payment_ratio="5.00",
        )
        updated = recompute_derived_fields(contract)
        assert updated.total_billing_tax_included == "12"
        assert updated.payment_ratio == "5.00"


class TestTemplates:

    def test_new_contract_category_from_view(self):
        assert new_contract("P", "Name", "Sup", view_category="technology").category == Category.TECHNOLOGY
        assert new_contract("P", view_category="overview").category == Category.LABOR

    def test_apply_template(self):
        template = ContractTemplate(
            name="Steel supply",
            contract_name="Rebar",
            supplier="Beta Steel",
            contract_amount="50000",
            tax_rate=Decimal("13"),
            category=Category.MATERIAL,
        )
        contract = apply_template(template, "P-001")
        assert contract.project_id == "P-001"
        assert contract.supplier == "Beta Steel"
        assert contract.tax_rate == Decimal("13")
        assert contract.category == Category.MATERIAL

    def test_template_from_record(self):
        template = ContractTemplate.model_validate({"name": "T", "contractName": "X", "taxRate": 9})
        assert template.contract_name == "X"

    def test_apply_template_keeps_ledgers(self, contract):
        updated = apply_template(ContractTemplate(name="T", supplier="ACME"), "P-001", contract=contract)
        assert updated.monthly_billing.get("2025-01") == "500"
        assert updated.id == "3"


class TestStatistics:

    @pytest.fixture
    def portfolio(self):
        return [
            Contract(project_id="P", category="labor", contract_amount="1,000",
                     total_billing_tax_included="500", total_payment_tax_included="100"),
            Contract(project_id="P", category="labor", contract_amount="2000",
                     total_billing_tax_included="", total_payment_tax_included="junk"),
            Contract(project_id="P", category="material", contract_amount="300.50",
                     total_billing_tax_included="10", total_payment_tax_included="5"),
        ]

    def test_overall(self, portfolio):
        stats = summarize_contracts(portfolio)
        assert stats.total_contracts == 3
        assert stats.total_contract_amount == Decimal("3300.50")
        assert stats.total_billing == Decimal("510")
        assert stats.total_payment == Decimal("105")
        assert stats.by_category[Category.LABOR].count == 2
        assert stats.by_category[Category.TECHNOLOGY].count == 0

    def test_filtered(self, portfolio):
        stats = summarize_contracts(portfolio, category="material")
        assert stats.total_contracts == 1
        assert stats.total_contract_amount == Decimal("300.50")

    def test_overview_is_everything(self, portfolio):
        assert summarize_contracts(portfolio, category="overview").total_contracts == 3

    def test_serialised(self, portfolio):
        data = summarize_contracts(portfolio).to_dict()
        assert data["totalContractAmount"] == "3300.50"
        assert data["byCategory"]["material"]["billing"] == "10.00"

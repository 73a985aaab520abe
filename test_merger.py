"""
Contract Merger Tests

Validates the merge of extracted statement facts:
1. Supplier + project matching (first match wins, missing supplier never matches)
2. Cumulative total max rule and tax-included recomputation
3. Period amount routing: ledger when a timeline exists, pending otherwise
4. New-contract staging
5. Batch ingestion in order
"""

from decimal import Decimal

import pytest

from core.models import (
    Category,
    Contract,
    ExtractedFacts,
    MergeAction,
    MonthlyLedger,
    PendingBilling,
)
from ledger.merger import find_matching_contract, ingest_statements, merge_extraction
from ledger.monthly import apply_timeline


@pytest.fixture
def acme():
    return Contract(
        id="1",
        project_id="P-001",
        contract_name="ACME labour",
        supplier="ACME",
        contract_number="OLD-1",
        total_billing_tax_excluded="1000.00",
        total_billing_tax_included="1090.00",
    )


class TestMatching:

    def test_exact_supplier_and_project(self, acme):
        assert find_matching_contract("P-001", [acme], "ACME") == 0

    def test_case_sensitive(self, acme):
        assert find_matching_contract("P-001", [acme], "acme") is None

    def test_other_project(self, acme):
        assert find_matching_contract("P-002", [acme], "ACME") is None

    def test_missing_supplier_never_matches(self, acme):
        blank = acme.model_copy(update={"supplier": ""})
        assert find_matching_contract("P-001", [blank], None) is None
        assert find_matching_contract("P-001", [blank], "") is None

    def test_first_match_wins(self, acme):
        second = acme.model_copy(update={"id": "2"})
        assert find_matching_contract("P-001", [acme, second], "ACME") == 0

    def test_numeric_project_id(self, acme):
        contract = acme.model_copy(update={"project_id": "7"})
        assert find_matching_contract(7, [contract], "ACME") == 0


class TestUpdateExisting:

    def test_max_rule_keeps_larger_existing(self, acme):
        facts = ExtractedFacts(supplier="ACME", cumulative_amount="900")
        instruction = merge_extraction("P-001", [acme], facts)

        assert instruction.action == MergeAction.UPDATE_EXISTING
        assert instruction.contract.total_billing_tax_excluded == "1000.00"
        assert instruction.contract.total_billing_tax_included == "1090.00"
        assert not instruction.cumulative_applied

    def test_max_rule_adopts_larger_extracted(self, acme):
        facts = ExtractedFacts(supplier="ACME", cumulative_amount="1,500")
        instruction = merge_extraction("P-001", [acme], facts)

        assert instruction.contract.total_billing_tax_excluded == "1500.00"
        assert instruction.contract.total_billing_tax_included == "1635.00"
        assert instruction.cumulative_applied

    def test_included_uses_contract_rate(self, acme):
        contract = acme.model_copy(update={"tax_rate": Decimal("13"), "total_billing_tax_excluded": ""})
        facts = ExtractedFacts(supplier="ACME", cumulative_amount="100")
        instruction = merge_extraction("P-001", [contract], facts)
        assert instruction.contract.total_billing_tax_included == "113.00"

    def test_zero_totals_left_alone(self, acme):
        contract = acme.model_copy(update={
            "total_billing_tax_excluded": "",
            "total_billing_tax_included": "",
        })
        facts = ExtractedFacts(supplier="ACME", contract_number="PS-9")
        instruction = merge_extraction("P-001", [contract], facts)
        assert instruction.contract.total_billing_tax_excluded == ""
        assert instruction.contract.total_billing_tax_included == ""

    def test_contract_number_only_overwritten_when_extracted(self, acme):
        kept = merge_extraction("P-001", [acme], ExtractedFacts(supplier="ACME"))
        assert kept.contract.contract_number == "OLD-1"

        replaced = merge_extraction("P-001", [acme], ExtractedFacts(supplier="ACME", contract_number="PS-001"))
        assert replaced.contract.contract_number == "PS-001"

    def test_period_written_when_timeline_exists(self, acme):
        contract = acme.model_copy(update={
            "monthly_billing": MonthlyLedger.from_mapping({"2025-05": "100", "2025-06": ""}),
        })
        facts = ExtractedFacts(supplier="ACME", statement_period="2025-06", period_amount="250")
        instruction = merge_extraction("P-001", [contract], facts)

        assert instruction.written_month == "2025-06"
        assert instruction.contract.monthly_billing.get("2025-06") == "250"
        assert not instruction.contract.pending_billing.has_pending
        # Totals are not derived from the ledger
        assert instruction.contract.total_billing_tax_excluded == "1000.00"

    def test_period_without_month_ignored_when_timeline_exists(self, acme):
        contract = acme.model_copy(update={
            "monthly_billing": MonthlyLedger.from_mapping({"2025-05": "100"}),
        })
        facts = ExtractedFacts(supplier="ACME", period_amount="250")
        instruction = merge_extraction("P-001", [contract], facts)
        assert instruction.written_month is None
        assert instruction.contract.monthly_billing.to_dict() == {"2025-05": "100"}

    def test_period_staged_as_pending_without_timeline(self, acme):
        facts = ExtractedFacts(supplier="ACME", statement_period="2025-06", period_amount="500")
        instruction = merge_extraction("P-001", [acme], facts)

        assert instruction.contract.monthly_billing.is_empty()
        assert instruction.contract.pending_billing.entries == {"2025-06": "500"}
        assert instruction.pending_month == "2025-06"

    def test_pending_merged_with_prior_entries(self, acme):
        contract = acme.model_copy(update={"pending_billing": PendingBilling.of({"2025-05": "400"})})
        facts = ExtractedFacts(supplier="ACME", statement_period="2025-06", period_amount="500")
        instruction = merge_extraction("P-001", [contract], facts)
        assert instruction.contract.pending_billing.entries == {"2025-05": "400", "2025-06": "500"}

    def test_pending_uses_fallback_period(self, acme):
        facts = ExtractedFacts(supplier="ACME", period_amount="500")
        instruction = merge_extraction("P-001", [acme], facts, fallback_period="2025-09")
        assert instruction.contract.pending_billing.entries == {"2025-09": "500"}

    def test_pending_promoted_by_timeline(self, acme):
        facts = ExtractedFacts(supplier="ACME", statement_period="2025-06", period_amount="500")
        instruction = merge_extraction("P-001", [acme], facts)
        result = apply_timeline(instruction.contract, "2025-01", "2025-12")

        assert result.contract.monthly_billing.get("2025-06") == "500"
        assert not result.contract.pending_billing.has_pending

    def test_merge_is_idempotent(self, acme):
        facts = ExtractedFacts(supplier="ACME", cumulative_amount="1200", statement_period="2025-06",
                               period_amount="200")
        once = merge_extraction("P-001", [acme], facts).contract
        twice = merge_extraction("P-001", [once], facts).contract
        assert once.model_dump() == twice.model_dump()

    def test_input_not_mutated(self, acme):
        facts = ExtractedFacts(supplier="ACME", cumulative_amount="5000", period_amount="1")
        merge_extraction("P-001", [acme], facts)
        assert acme.total_billing_tax_excluded == "1000.00"
        assert not acme.pending_billing.has_pending


class TestStageNew:

    def test_new_contract_defaults(self):
        facts = ExtractedFacts(
            supplier="Beta Steel",
            contract_number="PS-777",
            statement_period="2025-03",
            period_amount="200",
            cumulative_amount="2,000",
        )
        instruction = merge_extraction("P-001", [], facts, view_category="material")
        contract = instruction.contract

        assert instruction.action == MergeAction.STAGE_NEW
        assert instruction.is_new
        assert contract.id is None
        assert contract.contract_name == "Beta Steel"
        assert contract.supplier == "Beta Steel"
        assert contract.tax_rate == Decimal(9)
        assert contract.category == Category.MATERIAL
        assert contract.total_billing_tax_excluded == "2,000"
        assert contract.total_billing_tax_included == "2180.00"
        assert contract.monthly_billing.is_empty()
        assert contract.pending_billing.entries == {"2025-03": "200"}

    def test_overview_view_defaults_to_labor(self):
        facts = ExtractedFacts(supplier="Gamma")
        instruction = merge_extraction("P-001", [], facts, view_category="overview")
        assert instruction.contract.category == Category.LABOR

    def test_no_cumulative_leaves_totals_blank(self):
        instruction = merge_extraction("P-001", [], ExtractedFacts(supplier="Gamma"))
        assert instruction.contract.total_billing_tax_excluded == ""
        assert instruction.contract.total_billing_tax_included == ""
        assert not instruction.contract.pending_billing.has_pending

    def test_missing_supplier_stages_new(self, acme):
        instruction = merge_extraction("P-001", [acme], ExtractedFacts(cumulative_amount="10"))
        assert instruction.is_new

    def test_configured_rate_for_new_contract(self, acme):
        facts = ExtractedFacts(supplier="Beta Steel", cumulative_amount="1,000")
        instruction = merge_extraction("P-001", [acme], facts, tax_rate=Decimal("13"))
        assert instruction.contract.tax_rate == Decimal("13")
        assert instruction.contract.total_billing_tax_included == "1130.00"

    def test_configured_rate_ignored_for_matched_contract(self, acme):
        facts = ExtractedFacts(supplier="ACME", cumulative_amount="2000")
        instruction = merge_extraction("P-001", [acme], facts, tax_rate=Decimal("13"))
        assert instruction.contract.tax_rate == acme.tax_rate


class TestIngestStatements:

    def test_batch_sees_staged_contracts(self):
        texts = [
            "分包方：Delta 计价编号：D-1\n2025 年 1 月\n本期计价金额 100 元\n开累计价金额 100 元",
            "分包方：Delta 计价编号：D-2\n2025 年 2 月\n本期计价金额 150 元\n开累计价金额 250 元",
        ]
        result = ingest_statements("P-001", [], texts)

        assert len(result.contracts) == 1
        assert result.staged_count == 1
        assert result.updated_count == 1
        contract = result.contracts[0]
        assert contract.contract_number == "D-2"
        assert contract.total_billing_tax_excluded == "250.00"
        assert contract.pending_billing.entries == {"2025-01": "100", "2025-02": "150"}

    def test_documents_without_supplier_skipped(self, acme):
        texts = ["本期计价金额 100 元", "分包方：ACME\n开累计价金额 3,000 元"]
        result = ingest_statements("P-001", [acme], texts)

        assert len(result.skipped) == 1
        assert result.skipped[0].index == 0
        assert result.contracts[0].total_billing_tax_excluded == "3000.00"

    def test_blank_supplier_label_skipped(self):
        result = ingest_statements("P-001", [], ["分包方： 计价编号：PS-001\n开累计价金额 100 元"])
        assert result.contracts == []
        assert len(result.skipped) == 1
        assert result.skipped[0].facts.contract_number == "PS-001"

    def test_batch_uses_configured_rate(self):
        result = ingest_statements("P-001", [], ["分包方：Delta\n开累计价金额 100 元"], tax_rate="6")
        assert result.contracts[0].total_billing_tax_included == "106.00"

    def test_original_list_untouched(self, acme):
        contracts = [acme]
        ingest_statements("P-001", contracts, ["分包方：ACME\n开累计价金额 3,000 元"])
        assert contracts[0].total_billing_tax_excluded == "1000.00"

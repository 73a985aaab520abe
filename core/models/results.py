"""Result records produced by the reconciliation engine.

These are handed to the caller (persistence and presentation layers);
the engine itself never stores them.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.models.canonical import Contract, ExtractedFacts, format_amount


class MergeAction(str, Enum):
    """What the caller should do with a merge result."""
    UPDATE_EXISTING = "update_existing"
    STAGE_NEW = "stage_new"


class MergeInstruction(BaseModel):
    """Outcome of merging one extraction into a project's contracts.

    Attributes:
        action: Update a matched contract or stage a new one
        contract: The contract state to persist
        matched_index: Position of the matched contract in the input list
        contract_id: Identity of the matched contract (None for new ones)
        facts: The extraction that produced this instruction
        written_month: Ledger month written directly (timeline present)
        pending_month: Month staged into PendingBilling (no timeline yet)
        cumulative_applied: Whether the extracted cumulative figure raised the total
        notes: Human-readable trail of what the merge decided
    """
    action: MergeAction
    contract: Contract
    matched_index: Optional[int] = None
    contract_id: Optional[str] = None
    facts: ExtractedFacts = Field(default_factory=ExtractedFacts)
    written_month: Optional[str] = None
    pending_month: Optional[str] = None
    cumulative_applied: bool = False
    notes: List[str] = Field(default_factory=list)

    @property
    def is_new(self) -> bool:
        return self.action == MergeAction.STAGE_NEW


class ReconciliationVerdict(BaseModel):
    """Monthly ledger sum compared with the stored cumulative total."""
    calculated: Decimal
    stored: Decimal
    difference: Decimal
    is_match: bool

    def to_dict(self) -> Dict:
        return {
            "calculated": format_amount(self.calculated),
            "stored": format_amount(self.stored),
            "difference": format_amount(self.difference),
            "isMatch": self.is_match,
        }


class TimelineResult(BaseModel):
    """A contract after timeline generation, plus what happened on the way."""
    contract: Contract
    months: List[str] = Field(default_factory=list)
    filled_from_pending: List[str] = Field(default_factory=list)
    discarded_pending: Dict[str, str] = Field(default_factory=dict)
    verdict: ReconciliationVerdict


class SkippedDocument(BaseModel):
    """A document from a batch that produced nothing to merge."""
    index: int
    reason: str
    facts: ExtractedFacts = Field(default_factory=ExtractedFacts)


class BatchIngestResult(BaseModel):
    """Contracts after a batch of statements was merged in order."""
    contracts: List[Contract] = Field(default_factory=list)
    instructions: List[MergeInstruction] = Field(default_factory=list)
    skipped: List[SkippedDocument] = Field(default_factory=list)

    @property
    def updated_count(self) -> int:
        return sum(1 for i in self.instructions if i.action == MergeAction.UPDATE_EXISTING)

    @property
    def staged_count(self) -> int:
        return sum(1 for i in self.instructions if i.action == MergeAction.STAGE_NEW)


class ContractReconciliationReport(BaseModel):
    """All consistency checks for a single contract.

    Attributes:
        contract_id: Contract identity (None when not yet persisted)
        supplier: Supplier name, for display
        status: "PASS" or "WARN" (divergence is never an error)
        verdict: Billing ledger vs stored cumulative total
        checks: Individual check results
    """
    contract_id: Optional[str] = None
    supplier: str = ""
    status: str = Field(..., description="Overall status: PASS or WARN")
    verdict: ReconciliationVerdict
    checks: List[dict] = Field(default_factory=list)

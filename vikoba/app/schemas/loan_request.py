"""
Loan request schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from vikoba.app.models.enums import LoanRequestStatus, LoanType, VoteState
from vikoba.app.schemas.ledger import as_utc
from vikoba.app.schemas.member import utcnow


class LoanRequest(BaseModel):
    """
    A member's request for a loan, decided by every admin active at
    submission time.
    """
    id: Optional[str] = None
    member_id: str
    member_name: str = ""
    amount: Decimal
    type: LoanType
    description: Optional[str] = None
    status: LoanRequestStatus = LoanRequestStatus.PENDING
    approvals: Dict[str, VoteState]
    approver_names: Dict[str, str] = Field(default_factory=dict)
    rejection_reason: Optional[str] = None
    requested_at: datetime = Field(default_factory=utcnow)
    decided_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    @field_validator("requested_at", "decided_at")
    @classmethod
    def _aware(cls, value):
        return as_utc(value)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude={"id"})


class LoanRequestCreate(BaseModel):
    """Schema for a member submitting a loan request."""
    amount: Decimal = Field(..., gt=0)
    type: LoanType
    description: Optional[str] = Field(None, max_length=500)
    member_id: Optional[str] = Field(None, description="Admins may submit on behalf of a member")


class VoteCreate(BaseModel):
    """Schema for an admin vote."""
    decision: VoteState
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("decision")
    @classmethod
    def _not_pending(cls, value: VoteState) -> VoteState:
        if value == VoteState.PENDING:
            raise ValueError("decision must be approved or rejected")
        return value


class ReconcileReport(BaseModel):
    checked: int
    posted: List[str]
    orphaned: List[str] = Field(default_factory=list)

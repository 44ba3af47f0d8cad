"""
Ledger schemas: transactions and the positions derived from them.
"""

from pydantic import BaseModel, Field, computed_field, field_validator
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional
from vikoba.app.models.enums import (
    Category, TransactionKind, TransactionSource, TransactionStatus,
    CONTRIBUTION_CATEGORIES, LOAN_CATEGORIES,
)
from vikoba.app.schemas.member import utcnow

ZERO = Decimal("0")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so ages can always be compared."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _zeroes(categories) -> Dict[str, Decimal]:
    return {category.value: ZERO for category in categories}


class Transaction(BaseModel):
    """
    One financial event.

    `amount` is what balances are computed from. For Standard loans it
    already includes interest; `principal` keeps the pre-interest figure for
    display.
    """
    id: Optional[str] = None
    kind: TransactionKind
    category: Category
    amount: Decimal
    principal: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    member_id: str
    member_name: str = ""
    occurred_at: datetime
    recorded_by: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    source: TransactionSource = TransactionSource.DIRECT
    reference: Optional[str] = None
    request_id: Optional[str] = None
    penalty_applied: bool = False
    penalty_applied_at: Optional[datetime] = None
    pre_penalty_amount: Optional[Decimal] = None
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("occurred_at", "penalty_applied_at", "created_at")
    @classmethod
    def _aware(cls, value):
        return as_utc(value)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude={"id"})


class TransactionCreate(BaseModel):
    """Schema for a direct entry recorded by an admin."""
    kind: TransactionKind
    category: Category
    amount: Decimal = Field(..., gt=0)
    member_id: str = Field(..., min_length=1)
    occurred_at: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    description: Optional[str] = Field(None, max_length=500)


class MemberBalance(BaseModel):
    """Per-category position of one member, replayed from transactions."""
    member_id: str
    contributed: Dict[str, Decimal] = Field(default_factory=lambda: _zeroes(CONTRIBUTION_CATEGORIES))
    loaned_principal: Dict[str, Decimal] = Field(default_factory=lambda: _zeroes(LOAN_CATEGORIES))
    loaned_gross: Dict[str, Decimal] = Field(default_factory=lambda: _zeroes(LOAN_CATEGORIES))
    repaid: Dict[str, Decimal] = Field(default_factory=lambda: _zeroes(LOAN_CATEGORIES))

    @computed_field
    @property
    def loaned_with_interest(self) -> Dict[str, Decimal]:
        # Interest is baked into stored loan amounts
        return dict(self.loaned_gross)

    @computed_field
    @property
    def outstanding(self) -> Dict[str, Decimal]:
        return {
            category: max(ZERO, gross - self.repaid.get(category, ZERO))
            for category, gross in self.loaned_gross.items()
        }

    @computed_field
    @property
    def total_contributed(self) -> Decimal:
        return sum(self.contributed.values(), ZERO)

    @computed_field
    @property
    def total_outstanding(self) -> Decimal:
        return sum(self.outstanding.values(), ZERO)


class GroupTotals(BaseModel):
    """Group-wide position: vault, loan pool and active loans."""
    vault_balance: Decimal = ZERO
    loan_pool: Decimal = ZERO
    active_loan_count: int = 0
    total_contributions: Decimal = ZERO
    contributions_by_category: Dict[str, Decimal] = Field(default_factory=lambda: _zeroes(CONTRIBUTION_CATEGORIES))
    outstanding_by_category: Dict[str, Decimal] = Field(default_factory=lambda: _zeroes(LOAN_CATEGORIES))
    member_count: int = 0


class HisaStatement(BaseModel):
    opening_balance: Decimal = ZERO
    contributed_in_month: Decimal = ZERO
    closing_balance: Decimal = ZERO


class LoanStatement(BaseModel):
    principal: Decimal = ZERO
    loaned_with_interest: Decimal = ZERO
    repaid_before_month: Decimal = ZERO
    repaid_in_month: Decimal = ZERO
    total_repaid: Decimal = ZERO
    remaining_balance: Decimal = ZERO


class MonthlyStatement(BaseModel):
    """Member statement for one calendar month."""
    member_id: str
    year: int
    month: int
    hisa: HisaStatement
    jamii_total: Decimal = ZERO
    loans: Dict[str, LoanStatement]


class OutstandingMember(BaseModel):
    """One row of the read-only reminder summary."""
    member_id: str
    member_name: str
    outstanding: Dict[str, Decimal]
    total_outstanding: Decimal


class AppliedPenalty(BaseModel):
    transaction_id: str
    member_id: str
    previous_amount: Decimal
    new_amount: Decimal
    penalty_amount: Decimal
    applied_at: datetime

"""
Bulk reconciliation schemas.
"""

from pydantic import BaseModel, Field
import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional


class BulkRow(BaseModel):
    """
    One row of an externally prepared sheet.

    Amounts are kept raw so the importer can tell a blank cell from a
    non-numeric one.
    """
    member_code: str
    date: Any
    full_name: Optional[str] = None
    hisa: Any = None
    jamii: Any = None
    standard_repayment: Any = None
    dharura_repayment: Any = None
    standard_loan: Any = None
    dharura_loan: Any = None


class BulkBatch(BaseModel):
    rows: List[BulkRow] = Field(..., min_length=1)


class RowOutcome(BaseModel):
    """Result of one row. `outcome` is accepted, duplicate, invalid, committed or failed."""
    row_number: int
    member_code: str
    member_id: Optional[str] = None
    member_name: Optional[str] = None
    date: Optional[dt.date] = None
    outcome: str
    error_code: Optional[str] = None
    message: Optional[str] = None
    duplicate_of: Optional[int] = None
    amounts: Dict[str, Decimal] = Field(default_factory=dict)
    reference: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    transaction_ids: List[str] = Field(default_factory=list)


class BatchCounts(BaseModel):
    total: int = 0
    accepted: int = 0
    duplicate: int = 0
    invalid: int = 0
    committed: int = 0
    failed: int = 0


class ValidationReport(BaseModel):
    counts: BatchCounts
    rows: List[RowOutcome]


class CommitReport(BaseModel):
    counts: BatchCounts
    rows: List[RowOutcome]
    transaction_count: int = 0

"""
Member position endpoints.

Members read their own balance, statement and history; admins read anyone's.
"""

from fastapi import APIRouter, Depends, Path, Query
from decimal import Decimal
from typing import Dict, List

from vikoba.app.core.dependencies import get_store
from vikoba.app.core.guards import require_self_or_admin
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.ledger.ledger_service import LedgerService
from vikoba.app.domain.penalties.penalty_engine import PenaltyEngine
from vikoba.app.models.enums import TransactionKind
from vikoba.app.schemas.ledger import AppliedPenalty, MemberBalance, MonthlyStatement, Transaction
from vikoba.app.schemas.member import Actor
from vikoba.app.services.member_directory import MemberDirectory

router = APIRouter(prefix="/members", tags=["Members"])


@router.get("/{member_id}/balance", response_model=MemberBalance)
async def get_member_balance(
    member_id: str = Path(..., description="Member ID"),
    actor: Actor = Depends(require_self_or_admin),
    store: DocumentStore = Depends(get_store),
):
    """Per-category contributions, loans, repayments and outstanding balance."""
    return await LedgerService(store).get_member_balance(member_id)


@router.get("/{member_id}/breakdown", response_model=Dict[str, Decimal])
async def get_category_breakdown(
    member_id: str = Path(..., description="Member ID"),
    kind: TransactionKind = Query(TransactionKind.CONTRIBUTION),
    actor: Actor = Depends(require_self_or_admin),
    store: DocumentStore = Depends(get_store),
):
    return await LedgerService(store).get_category_breakdown(member_id, kind)


@router.get("/{member_id}/statement", response_model=MonthlyStatement)
async def get_monthly_statement(
    member_id: str = Path(..., description="Member ID"),
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    actor: Actor = Depends(require_self_or_admin),
    store: DocumentStore = Depends(get_store),
):
    return await LedgerService(store).get_monthly_statement(member_id, year, month)


@router.get("/{member_id}/transactions", response_model=List[Transaction])
async def list_member_transactions(
    member_id: str = Path(..., description="Member ID"),
    actor: Actor = Depends(require_self_or_admin),
    store: DocumentStore = Depends(get_store),
):
    """Member history, most recent first."""
    return await LedgerService(store).list_member_transactions(member_id)


@router.post("/{member_id}/penalties/check", response_model=List[AppliedPenalty])
async def check_penalties(
    member_id: str = Path(..., description="Member ID"),
    actor: Actor = Depends(require_self_or_admin),
    store: DocumentStore = Depends(get_store),
):
    """
    Apply any overdue Dharura penalties for the member.

    Called on dashboard load; returns only the penalties applied by this call.
    """
    await MemberDirectory(store).require_member(member_id)
    return await PenaltyEngine(store).check_and_apply(actor, member_id)

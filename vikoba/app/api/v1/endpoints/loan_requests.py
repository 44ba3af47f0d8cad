"""
Loan Request API Endpoints.

Members submit requests; every admin active at submission time must
approve before the loan is posted to the ledger.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from typing import List, Optional

from vikoba.app.core.dependencies import get_current_actor, get_store
from vikoba.app.core.guards import enforce_self_or_admin, require_admin
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.loans.loan_requests import LoanRequestService
from vikoba.app.models.enums import LoanRequestStatus
from vikoba.app.schemas.loan_request import LoanRequest, LoanRequestCreate, VoteCreate
from vikoba.app.schemas.member import Actor
from vikoba.app.services.member_directory import MemberDirectory

router = APIRouter(prefix="/loan-requests", tags=["Loan Requests"])


@router.post("", response_model=LoanRequest, status_code=status.HTTP_201_CREATED)
async def submit_loan_request(
    payload: LoanRequestCreate,
    actor: Actor = Depends(get_current_actor),
    store: DocumentStore = Depends(get_store),
):
    """
    Submit a loan request.

    Members always borrow for themselves. Admins may pass `member_id` to
    submit on a member's behalf.
    """
    member_id = payload.member_id if actor.is_admin and payload.member_id else actor.actor_id
    enforce_self_or_admin(actor, member_id)

    directory = MemberDirectory(store)
    member = await directory.require_member(member_id)
    approvers = await directory.list_active_admins()

    return await LoanRequestService(store).submit(
        actor, member, payload.amount, payload.type, payload.description, approvers
    )


@router.get("", response_model=List[LoanRequest])
async def list_loan_requests(
    status_filter: Optional[LoanRequestStatus] = Query(None, alias="status"),
    member_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    store: DocumentStore = Depends(get_store),
):
    """Admins see every request; members see only their own."""
    if not actor.is_admin:
        member_id = actor.actor_id
    return await LoanRequestService(store).list_requests(member_id=member_id, status=status_filter)


@router.get("/{request_id}", response_model=LoanRequest)
async def get_loan_request(
    request_id: str = Path(..., description="Loan request ID"),
    actor: Actor = Depends(get_current_actor),
    store: DocumentStore = Depends(get_store),
):
    request = await LoanRequestService(store).get(request_id)
    enforce_self_or_admin(actor, request.member_id)
    return request


@router.post("/{request_id}/votes", response_model=LoanRequest)
async def vote_on_loan_request(
    vote: VoteCreate,
    request_id: str = Path(..., description="Loan request ID"),
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """
    Cast the calling admin's vote.

    A rejection closes the request immediately. The last approval posts the
    loan (Standard loans with interest) and closes the request as Approved.
    """
    return await LoanRequestService(store).vote(
        admin, request_id, admin.actor_id, vote.decision, vote.reason
    )

"""
Admin API Endpoints.

Group directory, activity log and the maintenance jobs: penalty sweep and
loan reconciliation.
"""

from fastapi import APIRouter, Depends, Query, status
from datetime import datetime
from typing import List, Optional

from vikoba.app.core.dependencies import get_store
from vikoba.app.core.guards import require_admin
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.loans.loan_requests import LoanRequestService
from vikoba.app.domain.penalties.penalty_engine import PenaltyEngine
from vikoba.app.models.enums import ActivityStatus, EntityType, MemberStatus
from vikoba.app.schemas.activity import ActivityFilter, ActivityLogEntry, ActivityStats
from vikoba.app.schemas.ledger import AppliedPenalty
from vikoba.app.schemas.loan_request import ReconcileReport
from vikoba.app.schemas.member import Actor, MemberCodeAssignment, MemberCreate, MemberProfile
from vikoba.app.services.audit import activity_stats, list_activity
from vikoba.app.services.member_directory import MemberDirectory

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/members", response_model=MemberProfile, status_code=status.HTTP_201_CREATED)
async def add_member(
    payload: MemberCreate,
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    return await MemberDirectory(store).add_member(admin, payload)


@router.get("/members", response_model=List[MemberProfile])
async def list_members(
    status_filter: Optional[MemberStatus] = Query(None, alias="status"),
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """Directory in sign-up order."""
    return await MemberDirectory(store).list_members(status_filter)


@router.post("/members/assign-codes", response_model=List[MemberCodeAssignment])
async def assign_member_codes(
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """Give every member without a code the next free SBK code."""
    return await MemberDirectory(store).assign_member_codes(admin)


@router.post("/loan-requests/reconcile", response_model=ReconcileReport)
async def reconcile_approved_loans(
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """Post the loan transaction of any Approved request that is missing one."""
    return await LoanRequestService(store).reconcile_approved(admin)


@router.post("/penalties/sweep", response_model=List[AppliedPenalty])
async def sweep_penalties(
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """Scheduled job: apply overdue Dharura penalties for every member."""
    return await PenaltyEngine(store).sweep(admin)


@router.get("/activity", response_model=List[ActivityLogEntry])
async def get_activity(
    actor_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    entity_type: Optional[EntityType] = Query(None),
    affected_member_id: Optional[str] = Query(None),
    status_filter: Optional[ActivityStatus] = Query(None, alias="status"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """Activity of the admin's group, most recent first."""
    activity_filter = ActivityFilter(
        group_code=admin.group_code,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        affected_member_id=affected_member_id,
        status=status_filter,
        start=start,
        end=end,
        limit=limit,
    )
    return await list_activity(store, activity_filter)


@router.get("/activity/stats", response_model=ActivityStats)
async def get_activity_stats(
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    return await activity_stats(store, admin.group_code)

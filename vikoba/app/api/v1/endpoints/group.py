"""
Group-wide position endpoints.
"""

from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from vikoba.app.core.dependencies import get_current_actor, get_store
from vikoba.app.core.guards import require_admin
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.ledger.ledger_service import LedgerService
from vikoba.app.models.enums import Category
from vikoba.app.schemas.ledger import GroupTotals, OutstandingMember
from vikoba.app.schemas.member import Actor

router = APIRouter(prefix="/group", tags=["Group"])


@router.get("/totals", response_model=GroupTotals)
async def get_group_totals(
    actor: Actor = Depends(get_current_actor),
    store: DocumentStore = Depends(get_store),
):
    """Vault balance, loan pool and active loan count."""
    return await LedgerService(store).get_group_totals()


@router.get("/outstanding", response_model=List[OutstandingMember])
async def list_outstanding_members(
    category: Optional[Category] = Query(None, description="Limit to one loan category"),
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """Members with an open loan balance, for reminder systems to poll."""
    return await LedgerService(store).outstanding_members(category)

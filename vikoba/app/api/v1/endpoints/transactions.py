"""
Direct transaction entry.
"""

from fastapi import APIRouter, Depends, status

from vikoba.app.core.dependencies import get_store
from vikoba.app.core.guards import require_admin
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.ledger.ledger_service import LedgerService
from vikoba.app.schemas.ledger import Transaction, TransactionCreate
from vikoba.app.schemas.member import Actor

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("", response_model=Transaction, status_code=status.HTTP_201_CREATED)
async def record_transaction(
    payload: TransactionCreate,
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """
    Record a contribution, loan or repayment.

    Standard loans are stored with interest included.
    """
    return await LedgerService(store).record_transaction(admin, payload)

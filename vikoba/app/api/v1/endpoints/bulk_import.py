"""
Bulk Reconciliation API Endpoints.

Validate a transcribed batch first, then commit it. Commit re-validates,
so a batch that changed since validation is judged against the live ledger.
"""

from fastapi import APIRouter, Depends

from vikoba.app.core.dependencies import get_store
from vikoba.app.core.guards import require_admin
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.bulk_import.importer import BulkImporter
from vikoba.app.schemas.bulk_import import BulkBatch, CommitReport, ValidationReport
from vikoba.app.schemas.member import Actor

router = APIRouter(prefix="/admin/bulk-import", tags=["Admin - Bulk Import"])


@router.post("/validate", response_model=ValidationReport)
async def validate_batch(
    batch: BulkBatch,
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    """Per-row outcome for the batch. Nothing is written."""
    return await BulkImporter(store).validate_batch(batch.rows)


@router.post("/commit", response_model=CommitReport)
async def commit_batch(
    batch: BulkBatch,
    admin: Actor = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    return await BulkImporter(store).commit_batch(admin, batch.rows)

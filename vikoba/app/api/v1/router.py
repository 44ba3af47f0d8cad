"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from vikoba.app.api.v1.endpoints import (
    admin, bulk_import, group, loan_requests, members, transactions
)

router = APIRouter()

# Member positions and penalty check
router.include_router(members.router)

# Group totals and reminder summary
router.include_router(group.router)

# Direct entry
router.include_router(transactions.router)

# Loan workflow
router.include_router(loan_requests.router)

# Admin: directory, activity log, maintenance jobs
router.include_router(admin.router)
router.include_router(bulk_import.router)

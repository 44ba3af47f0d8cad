"""
Loan Request State Machine.

Pending -> Approved | Rejected, both terminal.

Every admin active at submission time is snapshotted into `approvals`.
A single rejection vetoes the request; it is approved only once every
snapshotted admin has approved. Status is always `resolve_status(approvals)`.

Approval posts exactly one loan transaction. The ledger and the request
live in different collections with no cross-record transaction, so the
loan is appended first under the deterministic id `loan-<request_id>` and
only then is the request written as Approved. Re-running an approval
after a partial failure finds the existing transaction instead of
posting a second one.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from vikoba.app.core.config import Settings, settings as default_settings
from vikoba.app.core.exceptions import (
    InvalidStateError, NoApproversError, NotFoundError, PreconditionFailed,
    StoreError, UnknownVoterError, ValidationError,
)
from vikoba.app.core.reliability import RetryPolicy
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.ledger.aggregator import loan_amount_with_interest
from vikoba.app.domain.ledger.ledger_store import TRANSACTION_COLLECTION, LedgerStore
from vikoba.app.models.enums import (
    Category, EntityType, LoanRequestStatus, LoanType, TransactionKind,
    TransactionSource, VoteState,
)
from vikoba.app.schemas.ledger import Transaction
from vikoba.app.schemas.loan_request import LoanRequest, ReconcileReport
from vikoba.app.schemas.member import Actor, MemberProfile
from vikoba.app.services.audit import ActivityAction, log_event, log_failure

logger = logging.getLogger("vikoba.loans")

LOAN_REQUEST_COLLECTION = "loan_requests"


def resolve_status(approvals: Dict[str, VoteState]) -> LoanRequestStatus:
    """Any rejection -> Rejected; every admin approved -> Approved; otherwise Pending."""
    votes = [VoteState(vote) for vote in approvals.values()]
    if VoteState.REJECTED in votes:
        return LoanRequestStatus.REJECTED
    if votes and all(vote == VoteState.APPROVED for vote in votes):
        return LoanRequestStatus.APPROVED
    return LoanRequestStatus.PENDING


def loan_transaction_id(request_id: str) -> str:
    return f"loan-{request_id}"


class LoanRequestService:

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.ledger = LedgerStore(store)
        self.retry_policy = retry_policy or RetryPolicy(
            attempts=self.settings.approval_append_attempts,
            backoff_seconds=self.settings.approval_append_backoff_seconds,
        )

    async def submit(
        self,
        actor: Actor,
        member: MemberProfile,
        amount: Decimal,
        loan_type: LoanType,
        description: Optional[str],
        approvers: Dict[str, str],
    ) -> LoanRequest:
        """
        Open a loan request.

        Args:
            actor: Who submitted it (the member, or an admin on their behalf)
            member: Borrower
            amount: Principal, before any interest
            loan_type: Standard or Dharura
            description: Purpose given by the member
            approvers: Admin id -> display name of every currently active admin

        Raises:
            ValidationError: amount is not positive
            NoApproversError: approvers is empty
        """
        if amount <= 0:
            raise ValidationError("Loan amount must be greater than zero", details={"amount": str(amount)})
        if not approvers:
            raise NoApproversError()

        request = LoanRequest(
            member_id=member.id,
            member_name=member.display_name,
            amount=amount,
            type=loan_type,
            description=description,
            approvals={admin_id: VoteState.PENDING for admin_id in approvers},
            approver_names=dict(approvers),
        )
        request.id = await self.store.put(LOAN_REQUEST_COLLECTION, request.to_document())

        await log_event(
            self.store,
            actor,
            ActivityAction.LOAN_REQUESTED,
            EntityType.LOAN,
            request.id,
            f"{member.display_name} requested a {loan_type.value} loan of {amount}",
            affected_member_id=member.id,
            metadata={"amount": str(amount), "loan_type": loan_type.value, "approvers": sorted(approvers)},
        )
        logger.info("Loan request %s opened with %s approvers", request.id, len(approvers))
        return request

    async def get(self, request_id: str) -> LoanRequest:
        try:
            document = await self.store.get(LOAN_REQUEST_COLLECTION, request_id)
        except NotFoundError:
            raise NotFoundError("Loan request", request_id) from None
        return LoanRequest.model_validate(document)

    async def list_requests(
        self,
        member_id: Optional[str] = None,
        status: Optional[LoanRequestStatus] = None,
    ) -> List[LoanRequest]:
        filters = {}
        if member_id:
            filters["member_id"] = member_id
        if status:
            filters["status"] = status
        documents = await self.store.query(LOAN_REQUEST_COLLECTION, filters)
        requests = [LoanRequest.model_validate(document) for document in documents]
        requests.sort(key=lambda request: request.requested_at, reverse=True)
        return requests

    async def vote(
        self,
        actor: Actor,
        request_id: str,
        admin_id: str,
        decision: VoteState,
        reason: Optional[str] = None,
    ) -> LoanRequest:
        """
        Record one admin's vote and move the request to its resulting state.

        Admins may change their vote while the request is Pending. The write
        is conditional on the approvals that were read; if another vote lands
        first the request is re-read and this vote applied again on top.

        Raises:
            NotFoundError: No such request
            InvalidStateError: The request is already Approved or Rejected
            UnknownVoterError: admin_id was not snapshotted as an approver
            StoreError: The loan transaction could not be posted
        """
        if decision not in (VoteState.APPROVED, VoteState.REJECTED):
            raise ValidationError("Vote must be approved or rejected", details={"decision": VoteState(decision).value})

        while True:
            request = await self.get(request_id)
            if request.status != LoanRequestStatus.PENDING:
                raise InvalidStateError(request_id, request.status.value)
            if admin_id not in request.approvals:
                raise UnknownVoterError(request_id, admin_id)

            approvals = {**request.approvals, admin_id: decision}
            status = resolve_status(approvals)

            tx_id = None
            if status == LoanRequestStatus.APPROVED:
                tx_id = await self._post_loan_transaction(actor, request)

            try:
                updated = await self._write_vote(request, approvals, status, reason, tx_id)
            except PreconditionFailed:
                if tx_id is None:
                    logger.info("Loan request %s changed while voting, retrying", request_id)
                    continue
                current = await self.get(request_id)
                if current.status == LoanRequestStatus.APPROVED and current.transaction_id == tx_id:
                    logger.info("Loan request %s was approved concurrently", request_id)
                    return current
                if current.status == LoanRequestStatus.REJECTED:
                    await self._report_orphan(actor, current, tx_id)
                    raise InvalidStateError(request_id, current.status.value)
                continue
            break

        await self._audit_vote(actor, updated, admin_id, decision, reason)
        return updated

    async def _write_vote(
        self,
        request: LoanRequest,
        approvals: Dict[str, VoteState],
        status: LoanRequestStatus,
        reason: Optional[str],
        tx_id: Optional[str],
    ) -> LoanRequest:
        read_approvals = request.model_dump(mode="json")["approvals"]

        def unchanged(current: dict) -> bool:
            return current["status"] == LoanRequestStatus.PENDING.value and current["approvals"] == read_approvals

        patch = {
            "approvals": {admin: VoteState(vote).value for admin, vote in approvals.items()},
            "status": status.value,
        }
        if status != LoanRequestStatus.PENDING:
            patch["decided_at"] = datetime.now(timezone.utc).isoformat()
        if status == LoanRequestStatus.REJECTED:
            patch["rejection_reason"] = reason
        if tx_id:
            patch["transaction_id"] = tx_id

        document = await self.store.update_if(LOAN_REQUEST_COLLECTION, request.id, unchanged, patch)
        return LoanRequest.model_validate(document)

    def _loan_transaction(self, actor: Actor, request: LoanRequest, occurred_at: datetime) -> Transaction:
        rate = self.settings.standard_interest_rate
        return Transaction(
            kind=TransactionKind.LOAN,
            category=Category(request.type.value),
            amount=loan_amount_with_interest(request.amount, request.type, rate),
            principal=request.amount,
            interest_rate=rate if request.type == LoanType.STANDARD else None,
            member_id=request.member_id,
            member_name=request.member_name,
            occurred_at=occurred_at,
            recorded_by=actor.actor_id,
            source=TransactionSource.LOAN_APPROVAL,
            request_id=request.id,
            description=request.description,
        )

    async def _post_loan_transaction(self, actor: Actor, request: LoanRequest) -> str:
        """Append the loan with retries. On final failure audit it and re-raise."""
        tx_id = loan_transaction_id(request.id)
        tx = self._loan_transaction(actor, request, datetime.now(timezone.utc))
        try:
            return await self.retry_policy.call(self.ledger.append, tx, tx_id)
        except StoreError as exc:
            logger.error("Could not post loan for request %s: %s", request.id, exc.message)
            await log_failure(
                self.store,
                actor,
                ActivityAction.LOAN_APPROVED,
                EntityType.LOAN,
                request.id,
                f"Failed to post {request.type.value} loan for {request.member_name}",
                failure_reason=exc.message,
                affected_member_id=request.member_id,
                metadata={"amount": str(tx.amount), "loan_type": request.type.value, "transaction_id": tx_id},
            )
            raise

    async def _report_orphan(self, actor: Actor, request: LoanRequest, tx_id: str) -> None:
        logger.error("Loan request %s was rejected after its loan %s was posted", request.id, tx_id)
        await log_failure(
            self.store,
            actor,
            ActivityAction.LOAN_APPROVED,
            EntityType.LOAN,
            request.id,
            f"Loan {tx_id} was posted but the request was rejected concurrently",
            failure_reason="request rejected after loan transaction was posted",
            affected_member_id=request.member_id,
            metadata={"transaction_id": tx_id},
        )

    async def _audit_vote(
        self,
        actor: Actor,
        request: LoanRequest,
        admin_id: str,
        decision: VoteState,
        reason: Optional[str],
    ) -> None:
        voter = request.approver_names.get(admin_id, admin_id)
        metadata = {"loan_type": request.type.value, "decision": decision.value, "voter_id": admin_id}

        if request.status == LoanRequestStatus.APPROVED:
            tx = await self.ledger.get(request.transaction_id)
            action = ActivityAction.LOAN_APPROVED
            description = f"Approved {request.type.value} loan of {tx.amount} for {request.member_name}"
            metadata.update({
                "amount": str(tx.amount),
                "principal": str(request.amount),
                "transaction_id": request.transaction_id,
            })
        elif request.status == LoanRequestStatus.REJECTED:
            action = ActivityAction.LOAN_REJECTED
            description = f"{voter} rejected the {request.type.value} loan request of {request.member_name}"
        else:
            action = ActivityAction.LOAN_VOTE_CAST
            description = f"{voter} voted {decision.value} on the loan request of {request.member_name}"

        await log_event(
            self.store,
            actor,
            action,
            EntityType.LOAN,
            request.id,
            description,
            affected_member_id=request.member_id,
            after={"status": request.status.value, "approvals": request.model_dump(mode="json")["approvals"]},
            reason=reason,
            metadata=metadata,
        )

    async def reconcile_approved(self, actor: Actor) -> ReconcileReport:
        """
        Post the loan transaction of every Approved request that is missing one.

        Rejected requests that still have a posted loan are reported as
        orphaned and left for an admin to reverse.
        """
        approved = await self.list_requests(status=LoanRequestStatus.APPROVED)
        posted = []
        for request in approved:
            tx_id = request.transaction_id or loan_transaction_id(request.id)
            if await self.store.exists(TRANSACTION_COLLECTION, tx_id):
                continue

            tx = self._loan_transaction(actor, request, request.decided_at or datetime.now(timezone.utc))
            await self.retry_policy.call(self.ledger.append, tx, tx_id)
            posted.append(tx_id)

            await log_event(
                self.store,
                actor,
                ActivityAction.LOAN_TRANSACTION_RECONCILED,
                EntityType.LOAN,
                request.id,
                f"Posted missing {request.type.value} loan of {tx.amount} for {request.member_name}",
                affected_member_id=request.member_id,
                metadata={"amount": str(tx.amount), "transaction_id": tx_id},
            )
            logger.warning("Reconciled missing loan transaction %s", tx_id)

        orphaned = []
        for request in await self.list_requests(status=LoanRequestStatus.REJECTED):
            tx_id = loan_transaction_id(request.id)
            if await self.store.exists(TRANSACTION_COLLECTION, tx_id):
                logger.warning("Loan %s belongs to rejected request %s", tx_id, request.id)
                orphaned.append(tx_id)

        return ReconcileReport(checked=len(approved), posted=posted, orphaned=orphaned)

"""
Penalty Engine.

Adds a flat fee to Dharura loans that are still unpenalized after the
grace period. Safe to run as often as callers like, including
concurrently for the same member: each loan is surcharged through a
single-record conditional update, so it is charged at most once.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from vikoba.app.core.config import Settings, settings as default_settings
from vikoba.app.core.exceptions import NotFoundError, StoreError
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.ledger.ledger_store import LedgerStore
from vikoba.app.models.enums import Category, EntityType, TransactionKind, TransactionStatus
from vikoba.app.schemas.ledger import AppliedPenalty, Transaction, as_utc
from vikoba.app.schemas.member import Actor
from vikoba.app.services.audit import ActivityAction, log_event, log_failure

logger = logging.getLogger("vikoba.penalties")


class PenaltyEngine:

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings
        self.ledger = LedgerStore(store)

    @property
    def grace_period(self) -> timedelta:
        return timedelta(days=self.settings.dharura_grace_days)

    def find_candidates(self, transactions: Iterable[Transaction], now: datetime) -> List[Transaction]:
        """Completed, unpenalized Dharura loans strictly older than the grace period."""
        return [
            tx for tx in transactions
            if tx.kind == TransactionKind.LOAN
            and tx.category == Category.DHARURA
            and tx.status == TransactionStatus.COMPLETED
            and not tx.penalty_applied
            and now - tx.occurred_at > self.grace_period
        ]

    async def check_and_apply(
        self,
        actor: Actor,
        member_id: str,
        now: Optional[datetime] = None,
    ) -> List[AppliedPenalty]:
        """
        Penalize every overdue Dharura loan of a member.

        A loan that was penalized in the meantime is skipped silently. A
        store failure on one loan is logged and audited as failed, and the
        remaining loans are still processed.

        Returns:
            The penalties this call applied
        """
        now = as_utc(now) or datetime.now(timezone.utc)
        fee = self.settings.dharura_penalty_amount
        candidates = self.find_candidates(await self.ledger.list_by_member(member_id), now)
        if not candidates:
            return []

        logger.info("Found %s overdue Dharura loans for member %s", len(candidates), member_id)
        applied = []
        for tx in candidates:
            new_amount = tx.amount + fee
            try:
                changed = await self.ledger.mark_penalized(tx.id, new_amount, tx.amount, now)
                if not changed:
                    continue

                penalty = AppliedPenalty(
                    transaction_id=tx.id,
                    member_id=member_id,
                    previous_amount=tx.amount,
                    new_amount=new_amount,
                    penalty_amount=fee,
                    applied_at=now,
                )
                applied.append(penalty)
                await log_event(
                    self.store,
                    actor,
                    ActivityAction.LOAN_PENALTY_APPLIED,
                    EntityType.LOAN,
                    tx.id,
                    f"Penalty of {fee} applied to overdue Dharura loan from {tx.occurred_at.date().isoformat()}",
                    affected_member_id=member_id,
                    before={"amount": str(tx.amount), "penalty_applied": False},
                    after={"amount": str(new_amount), "penalty_applied": True, "penalty_applied_at": now.isoformat()},
                    metadata={
                        "loan_id": tx.id,
                        "penalty_amount": str(fee),
                        "original_amount": str(tx.amount),
                        "new_amount": str(new_amount),
                        "loan_type": Category.DHARURA.value,
                    },
                )
            except NotFoundError:
                logger.warning("Loan %s disappeared before its penalty could be applied", tx.id)
            except StoreError as exc:
                logger.error("Failed to apply penalty to loan %s: %s", tx.id, exc.message)
                await log_failure(
                    self.store,
                    actor,
                    ActivityAction.LOAN_PENALTY_APPLIED,
                    EntityType.LOAN,
                    tx.id,
                    f"Failed to apply penalty to Dharura loan {tx.id}",
                    failure_reason=exc.message,
                    affected_member_id=member_id,
                    metadata={"penalty_amount": str(fee), "original_amount": str(tx.amount)},
                )

        return applied

    async def sweep(self, actor: Actor, now: Optional[datetime] = None) -> List[AppliedPenalty]:
        """Run check_and_apply for every member holding a Dharura loan."""
        loans = await self.ledger.list_loans(Category.DHARURA)
        member_ids = sorted({tx.member_id for tx in loans})

        applied = []
        for member_id in member_ids:
            applied.extend(await self.check_and_apply(actor, member_id, now))

        logger.info("Penalty sweep over %s members applied %s penalties", len(member_ids), len(applied))
        return applied

"""
Ledger Service (Domain Logic).

Direct entry of transactions by admins and the balance queries exposed to
members. Every balance is replayed from the ledger on each call.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from vikoba.app.core.config import Settings, settings as default_settings
from vikoba.app.core.exceptions import StoreError
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.ledger import aggregator
from vikoba.app.domain.ledger.ledger_store import LedgerStore, validate_transaction
from vikoba.app.models.enums import Category, EntityType, TransactionKind, TransactionSource
from vikoba.app.schemas.ledger import (
    GroupTotals, MemberBalance, MonthlyStatement, OutstandingMember, Transaction, TransactionCreate,
)
from vikoba.app.schemas.member import Actor
from vikoba.app.services.audit import ActivityAction, log_event, log_failure
from vikoba.app.services.member_directory import MemberDirectory

logger = logging.getLogger("vikoba.ledger")


class LedgerService:

    def __init__(
        self,
        store: DocumentStore,
        directory: Optional[MemberDirectory] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.ledger = LedgerStore(store)
        self.directory = directory or MemberDirectory(store, self.settings)

    async def record_transaction(self, actor: Actor, payload: TransactionCreate) -> Transaction:
        """
        Record a transaction entered directly by an admin.

        Loans are priced here: a Standard loan is stored with its interest
        included and the entered amount kept as principal.

        Raises:
            NotFoundError: Unknown member
            ValidationError: Invalid kind/category pair or amount
            StoreError: The append failed (a failed activity entry is written first)
        """
        member = await self.directory.require_member(payload.member_id)

        amount = payload.amount
        principal = None
        interest_rate = None
        if payload.kind == TransactionKind.LOAN:
            principal = payload.amount
            amount = aggregator.loan_amount_with_interest(
                payload.amount, payload.category, self.settings.standard_interest_rate
            )
            if payload.category == Category.STANDARD:
                interest_rate = self.settings.standard_interest_rate

        tx = Transaction(
            kind=payload.kind,
            category=payload.category,
            amount=amount,
            principal=principal,
            interest_rate=interest_rate,
            member_id=member.id,
            member_name=member.display_name,
            occurred_at=payload.occurred_at or datetime.now(timezone.utc),
            recorded_by=actor.actor_id,
            status=payload.status,
            source=TransactionSource.DIRECT,
            description=payload.description,
        )
        validate_transaction(tx)

        metadata = {"amount": str(tx.amount), "kind": tx.kind.value, "category": tx.category.value}
        try:
            tx.id = await self.ledger.append(tx)
        except StoreError as exc:
            await log_failure(
                self.store,
                actor,
                ActivityAction.TRANSACTION_CREATED,
                EntityType.TRANSACTION,
                "unsaved",
                f"Failed to record {tx.kind.value} for {member.display_name}",
                failure_reason=exc.message,
                affected_member_id=member.id,
                metadata=metadata,
            )
            raise

        await log_event(
            self.store,
            actor,
            ActivityAction.TRANSACTION_CREATED,
            EntityType.TRANSACTION,
            tx.id,
            f"Recorded {tx.category.value} {tx.kind.value.lower()} of {tx.amount} for {member.display_name}",
            affected_member_id=member.id,
            after=tx.model_dump(mode="json", include={"kind", "category", "amount", "principal", "occurred_at"}),
            metadata=metadata,
        )
        return tx

    async def get_member_balance(self, member_id: str) -> MemberBalance:
        await self.directory.require_member(member_id)
        return aggregator.member_balance(await self.ledger.list_by_member(member_id), member_id)

    async def get_group_totals(self) -> GroupTotals:
        return aggregator.group_totals(await self.ledger.list_all())

    async def get_category_breakdown(self, member_id: str, kind: TransactionKind) -> Dict[str, Decimal]:
        await self.directory.require_member(member_id)
        return aggregator.category_breakdown(await self.ledger.list_by_member(member_id), member_id, kind)

    async def get_monthly_statement(self, member_id: str, year: int, month: int) -> MonthlyStatement:
        await self.directory.require_member(member_id)
        transactions = await self.ledger.list_by_member(member_id)
        return aggregator.monthly_statement(transactions, member_id, year, month)

    async def list_member_transactions(self, member_id: str) -> List[Transaction]:
        await self.directory.require_member(member_id)
        transactions = await self.ledger.list_by_member(member_id)
        transactions.sort(key=lambda tx: tx.occurred_at, reverse=True)
        return transactions

    async def outstanding_members(self, category: Optional[Category] = None) -> List[OutstandingMember]:
        return aggregator.members_with_outstanding(await self.ledger.list_all(), category)

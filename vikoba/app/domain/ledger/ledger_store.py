"""
Ledger Store.

Owns the append-only transactions collection. The only mutation ever
applied to a stored transaction is the one-time Dharura penalty.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from vikoba.app.core.exceptions import DocumentExistsError, PreconditionFailed, ValidationError
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.models.enums import ALLOWED_CATEGORIES, Category, TransactionKind
from vikoba.app.schemas.ledger import Transaction

logger = logging.getLogger("vikoba.ledger")

TRANSACTION_COLLECTION = "transactions"


def validate_transaction(tx: Transaction) -> None:
    """Raise ValidationError for a non-positive amount or an invalid kind/category pair."""
    if tx.amount <= 0:
        raise ValidationError(
            "Transaction amount must be greater than zero",
            details={"amount": str(tx.amount)},
        )
    if tx.category not in ALLOWED_CATEGORIES[tx.kind]:
        raise ValidationError(
            f"{tx.category.value} is not a valid category for a {tx.kind.value}",
            details={"kind": tx.kind.value, "category": tx.category.value},
        )


class LedgerStore:

    def __init__(self, store: DocumentStore):
        self.store = store

    async def append(self, tx: Transaction, tx_id: Optional[str] = None) -> str:
        """
        Append a transaction and return its id.

        With an explicit `tx_id` the append is idempotent: if a transaction
        with that id already exists it is left untouched and its id returned.
        """
        validate_transaction(tx)
        try:
            new_id = await self.store.put(TRANSACTION_COLLECTION, tx.to_document(), doc_id=tx_id)
        except DocumentExistsError:
            logger.info("Transaction %s already recorded, reusing it", tx_id)
            return tx_id

        logger.info(
            "Appended %s/%s of %s for member %s as %s",
            tx.kind.value, tx.category.value, tx.amount, tx.member_id, new_id,
        )
        return new_id

    async def get(self, tx_id: str) -> Transaction:
        return Transaction.model_validate(await self.store.get(TRANSACTION_COLLECTION, tx_id))

    async def list_by_member(self, member_id: str) -> List[Transaction]:
        documents = await self.store.query(TRANSACTION_COLLECTION, {"member_id": member_id})
        return [Transaction.model_validate(document) for document in documents]

    async def list_all(self) -> List[Transaction]:
        documents = await self.store.query(TRANSACTION_COLLECTION)
        return [Transaction.model_validate(document) for document in documents]

    async def list_loans(self, category: Optional[Category] = None) -> List[Transaction]:
        filters = {"kind": TransactionKind.LOAN}
        if category:
            filters["category"] = category
        documents = await self.store.query(TRANSACTION_COLLECTION, filters)
        return [Transaction.model_validate(document) for document in documents]

    async def find_by_reference(self, reference: str) -> List[Transaction]:
        documents = await self.store.query(TRANSACTION_COLLECTION, {"reference": reference})
        return [Transaction.model_validate(document) for document in documents]

    async def mark_penalized(
        self,
        tx_id: str,
        new_amount: Decimal,
        pre_amount: Decimal,
        applied_at: datetime,
    ) -> bool:
        """
        Apply the one-time penalty mutation.

        Returns:
            True if this call applied it, False if the transaction was already
            penalized or changed since `pre_amount` was read

        Raises:
            NotFoundError: The transaction no longer exists
        """
        def not_yet_penalized(current: dict) -> bool:
            return not current.get("penalty_applied") and Decimal(str(current["amount"])) == pre_amount

        try:
            await self.store.update_if(
                TRANSACTION_COLLECTION,
                tx_id,
                not_yet_penalized,
                {
                    "amount": str(new_amount),
                    "pre_penalty_amount": str(pre_amount),
                    "penalty_applied": True,
                    "penalty_applied_at": applied_at.isoformat(),
                },
            )
        except PreconditionFailed:
            logger.info("Penalty on %s already applied, nothing to do", tx_id)
            return False
        return True

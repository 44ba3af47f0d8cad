"""
Bulk Reconciliation Importer.

Takes rows transcribed from the group's paper or spreadsheet records and
turns them into ledger transactions. Every row is validated before
anything is written:

1. member code resolves to a member            -> UnknownMemberError
2. amounts are numbers                         -> FormatError
3. date parses (ISO, M/D/YYYY, Excel serial)   -> DateError
4. at least one amount is positive             -> EmptyRowError
5. not identical to an earlier accepted row    -> reported as duplicate
6. repayments only against an open loan        -> NoBalanceError

Negative amounts are treated as blank. Loan columns are priced the same
way as a directly recorded loan. The loan check replays the live ledger
plus the rows accepted earlier in the same batch, and a loan in a row
funds a repayment in that row, so rows are order-sensitive the way the
sheet is.
Committing is row by row and a failing row never aborts the batch.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from vikoba.app.core.config import Settings, settings as default_settings
from vikoba.app.core.exceptions import (
    BulkRowError, DateError, EmptyRowError, FormatError, NoBalanceError,
    StoreError, UnknownMemberError,
)
from vikoba.app.db.document_store import DocumentStore
from vikoba.app.domain.ledger.aggregator import loan_amount_with_interest, member_balance
from vikoba.app.domain.ledger.ledger_store import LedgerStore
from vikoba.app.models.enums import Category, EntityType, TransactionKind, TransactionSource
from vikoba.app.schemas.bulk_import import BatchCounts, BulkRow, CommitReport, RowOutcome, ValidationReport
from vikoba.app.schemas.ledger import Transaction, ZERO
from vikoba.app.schemas.member import Actor
from vikoba.app.services.audit import ActivityAction, log_event, log_failure
from vikoba.app.services.member_directory import MemberDirectory

logger = logging.getLogger("vikoba.bulk_import")

# Row field -> the transaction it becomes
AMOUNT_FIELDS = {
    "hisa": (TransactionKind.CONTRIBUTION, Category.HISA),
    "jamii": (TransactionKind.CONTRIBUTION, Category.JAMII),
    "standard_repayment": (TransactionKind.REPAYMENT, Category.STANDARD),
    "dharura_repayment": (TransactionKind.REPAYMENT, Category.DHARURA),
    "standard_loan": (TransactionKind.LOAN, Category.STANDARD),
    "dharura_loan": (TransactionKind.LOAN, Category.DHARURA),
}

# Fields compared when spotting a repeated row
DUPLICATE_KEY_FIELDS = ("hisa", "jamii", "standard_repayment", "dharura_repayment")

EXCEL_EPOCH = date(1899, 12, 30)
PREVIOUSLY_IMPORTED = "previously_imported"


def bulk_reference(day: date, member_id: str) -> str:
    return f"BULK-{day.isoformat()}-{member_id}"


def parse_amount(field: str, raw: Any) -> Decimal:
    """Blank means zero. Anything else must be a number; negatives are kept and never posted."""
    if raw is None:
        return ZERO
    if isinstance(raw, bool):
        raise FormatError(f"Invalid amount for {field}: {raw!r}", details={"field": field})

    if isinstance(raw, float):
        text = repr(raw)
    else:
        text = str(raw).strip().replace(",", "")
    if not text:
        return ZERO

    try:
        value = Decimal(text)
    except InvalidOperation:
        raise FormatError(f"Invalid amount for {field}: {raw!r}", details={"field": field}) from None
    if not value.is_finite():
        raise FormatError(f"Invalid amount for {field}: {raw!r}", details={"field": field})
    return value


def parse_date(raw: Any) -> date:
    """
    Parse a sheet date.

    Accepts a date object, ISO `YYYY-MM-DD`, `M/D/YYYY` (two-digit years are
    20xx) or an Excel serial day number.
    """
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    text = "" if raw is None else str(raw).strip()
    if not text:
        raise DateError("Missing date")

    if "/" not in text and "-" not in text:
        try:
            parsed = EXCEL_EPOCH + timedelta(days=int(float(text)))
        except (ValueError, OverflowError):
            parsed = None
        if parsed is not None and 1900 < parsed.year < 2100:
            return parsed

    parts = text.split("/")
    if len(parts) == 3:
        try:
            month, day, year = (int(part) for part in parts)
            return date(year + 2000 if year < 100 else year, month, day)
        except ValueError:
            pass

    try:
        return date.fromisoformat(text)
    except ValueError:
        pass

    raise DateError(
        f"Invalid date format: {text}. Use YYYY-MM-DD or M/D/YYYY",
        details={"date": text},
    )


class BulkImporter:

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

    def _row_transactions(self, outcome: RowOutcome, recorded_by: str) -> List[Transaction]:
        occurred_at = datetime.combine(outcome.date, time(), tzinfo=timezone.utc)
        transactions = []
        for field, (kind, category) in AMOUNT_FIELDS.items():
            amount = outcome.amounts.get(field, ZERO)
            if amount <= 0:
                continue
            principal = None
            interest_rate = None
            if kind == TransactionKind.LOAN:
                principal = amount
                amount = loan_amount_with_interest(amount, category, self.settings.standard_interest_rate)
                if category == Category.STANDARD:
                    interest_rate = self.settings.standard_interest_rate
            transactions.append(Transaction(
                kind=kind,
                category=category,
                amount=amount,
                principal=principal,
                interest_rate=interest_rate,
                member_id=outcome.member_id,
                member_name=outcome.member_name or "",
                occurred_at=occurred_at,
                recorded_by=recorded_by,
                source=TransactionSource.BULK_IMPORT,
                reference=outcome.reference,
                description="Bulk upload",
            ))
        return transactions

    async def validate_batch(self, rows: Sequence[BulkRow]) -> ValidationReport:
        """Validate every row in order without writing anything."""
        codes = await self.directory.code_index()
        live = await self.ledger.list_all()

        history: Dict[str, List[Transaction]] = defaultdict(list)
        for tx in live:
            history[tx.member_id].append(tx)
        existing_references = {tx.reference for tx in live if tx.reference}

        counts = BatchCounts(total=len(rows))
        outcomes = []
        seen: Dict[tuple, int] = {}

        for number, row in enumerate(rows, start=1):
            outcome = RowOutcome(row_number=number, member_code=row.member_code, outcome="invalid")
            outcomes.append(outcome)
            try:
                member = codes.get(row.member_code.strip().upper())
                if member is None:
                    raise UnknownMemberError(
                        f"Member code '{row.member_code}' not found",
                        details={"member_code": row.member_code},
                    )
                outcome.member_id = member.id
                outcome.member_name = member.display_name or row.full_name

                amounts = {field: parse_amount(field, getattr(row, field)) for field in AMOUNT_FIELDS}
                outcome.date = parse_date(row.date)
                outcome.amounts = amounts

                if not any(amount > 0 for amount in amounts.values()):
                    raise EmptyRowError("No amount to process (all are 0 or negative)")

                key = (member.id, outcome.date, tuple(amounts[field] for field in DUPLICATE_KEY_FIELDS))
                if key in seen:
                    outcome.outcome = "duplicate"
                    outcome.duplicate_of = seen[key]
                    outcome.message = f"Duplicate of row {seen[key]}"
                    counts.duplicate += 1
                    continue

                outcome.reference = bulk_reference(outcome.date, member.id)
                batch_transactions = self._row_transactions(outcome, "bulk-validation")
                row_loans = [tx for tx in batch_transactions if tx.kind == TransactionKind.LOAN]
                for field, (kind, category) in AMOUNT_FIELDS.items():
                    if kind != TransactionKind.REPAYMENT or amounts[field] <= 0:
                        continue
                    balance = member_balance(history[member.id] + row_loans, member.id)
                    if balance.outstanding.get(category.value, ZERO) <= 0:
                        raise NoBalanceError(
                            f"{member.display_name} has no outstanding {category.value} loan to repay",
                            details={"member_id": member.id, "category": category.value},
                        )

                if outcome.reference in existing_references:
                    outcome.warnings.append(PREVIOUSLY_IMPORTED)
                outcome.outcome = "accepted"
                seen[key] = number
                history[member.id].extend(batch_transactions)
                counts.accepted += 1

            except BulkRowError as exc:
                outcome.outcome = "invalid"
                outcome.error_code = exc.code
                outcome.message = exc.message
                counts.invalid += 1

        logger.info(
            "Validated %s rows: %s accepted, %s duplicate, %s invalid",
            counts.total, counts.accepted, counts.duplicate, counts.invalid,
        )
        return ValidationReport(counts=counts, rows=outcomes)

    async def commit_batch(self, actor: Actor, rows: Sequence[BulkRow]) -> CommitReport:
        """
        Re-validate the batch and write every accepted row.

        Each accepted row becomes one transaction per non-zero amount. A
        row whose writes fail is reported as failed with the ids of any
        transactions it did write, and the next row is still attempted.
        """
        report = await self.validate_batch(rows)
        counts = report.counts.model_copy()
        transaction_count = 0

        for outcome in report.rows:
            if outcome.outcome != "accepted":
                continue

            written = []
            try:
                for tx in self._row_transactions(outcome, actor.actor_id):
                    written.append(await self.ledger.append(tx))
            except StoreError as exc:
                outcome.outcome = "failed"
                outcome.transaction_ids = written
                outcome.message = exc.message
                counts.failed += 1
                transaction_count += len(written)
                logger.error("Bulk row %s failed after %s writes: %s", outcome.row_number, len(written), exc.message)
                await log_failure(
                    self.store,
                    actor,
                    ActivityAction.BULK_ROW_COMMITTED,
                    EntityType.BULK_IMPORT,
                    outcome.reference,
                    f"Failed to import row {outcome.row_number} for {outcome.member_name}",
                    failure_reason=exc.message,
                    affected_member_id=outcome.member_id,
                    metadata={"row_number": outcome.row_number, "transaction_ids": written},
                )
                continue

            outcome.outcome = "committed"
            outcome.transaction_ids = written
            counts.committed += 1
            transaction_count += len(written)
            try:
                await log_event(
                    self.store,
                    actor,
                    ActivityAction.BULK_ROW_COMMITTED,
                    EntityType.BULK_IMPORT,
                    outcome.reference,
                    f"Imported row {outcome.row_number} for {outcome.member_name} dated {outcome.date.isoformat()}",
                    affected_member_id=outcome.member_id,
                    metadata={
                        "bulk_upload": True,
                        "row_number": outcome.row_number,
                        "transaction_ids": written,
                        **{f"bulk_{field}_amount": str(amount) for field, amount in outcome.amounts.items() if amount > 0},
                    },
                )
            except StoreError:
                logger.exception("Row %s was imported but its activity entry could not be written", outcome.row_number)

        logger.info(
            "Committed %s of %s accepted rows (%s failed, %s transactions)",
            counts.committed, counts.accepted, counts.failed, transaction_count,
        )
        return CommitReport(counts=counts, rows=report.rows, transaction_count=transaction_count)

"""
Ledger Store tests: append validation, idempotent appends and the
one-time penalty mutation.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from vikoba.app.core.exceptions import NotFoundError, ValidationError
from vikoba.app.domain.ledger.ledger_store import LedgerStore
from vikoba.app.models.enums import Category, TransactionKind
from vikoba.app.schemas.ledger import Transaction


def make_tx(kind=TransactionKind.CONTRIBUTION, category=Category.HISA, amount="100000", member_id="M", **extra):
    return Transaction(
        kind=kind,
        category=category,
        amount=Decimal(amount),
        member_id=member_id,
        member_name="Mary Mushi",
        occurred_at=datetime(2026, 1, 8, tzinfo=timezone.utc),
        recorded_by="A1",
        **extra,
    )


@pytest.mark.asyncio
async def test_append_and_read_back(store):
    ledger = LedgerStore(store)

    tx_id = await ledger.append(make_tx())
    tx = await ledger.get(tx_id)

    assert tx.id == tx_id
    assert tx.amount == Decimal("100000")
    assert tx.category == Category.HISA
    assert tx.penalty_applied is False


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5"])
async def test_append_rejects_non_positive_amount(store, amount):
    with pytest.raises(ValidationError):
        await LedgerStore(store).append(make_tx(amount=amount))

    assert await LedgerStore(store).list_all() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("kind,category", [
    (TransactionKind.CONTRIBUTION, Category.STANDARD),
    (TransactionKind.CONTRIBUTION, Category.DHARURA),
    (TransactionKind.LOAN, Category.HISA),
    (TransactionKind.REPAYMENT, Category.JAMII),
])
async def test_append_rejects_invalid_kind_category_pair(store, kind, category):
    with pytest.raises(ValidationError):
        await LedgerStore(store).append(make_tx(kind=kind, category=category))


@pytest.mark.asyncio
async def test_append_with_explicit_id_is_idempotent(store):
    ledger = LedgerStore(store)
    tx = make_tx(kind=TransactionKind.LOAN, category=Category.STANDARD, amount="55000")

    first = await ledger.append(tx, tx_id="loan-req-1")
    second = await ledger.append(tx, tx_id="loan-req-1")

    assert first == second == "loan-req-1"
    assert len(await ledger.list_by_member("M")) == 1


@pytest.mark.asyncio
async def test_list_by_member_and_reference(store):
    ledger = LedgerStore(store)
    await ledger.append(make_tx(member_id="M", reference="BULK-2026-01-08-M"))
    await ledger.append(make_tx(member_id="M"))
    await ledger.append(make_tx(member_id="X"))

    assert len(await ledger.list_by_member("M")) == 2
    assert len(await ledger.list_all()) == 3
    assert len(await ledger.find_by_reference("BULK-2026-01-08-M")) == 1


@pytest.mark.asyncio
async def test_mark_penalized_applies_once(store):
    ledger = LedgerStore(store)
    tx_id = await ledger.append(make_tx(kind=TransactionKind.LOAN, category=Category.DHARURA, amount="20000"))
    applied_at = datetime(2026, 3, 1, tzinfo=timezone.utc)

    assert await ledger.mark_penalized(tx_id, Decimal("80000"), Decimal("20000"), applied_at) is True
    assert await ledger.mark_penalized(tx_id, Decimal("140000"), Decimal("80000"), applied_at) is False

    tx = await ledger.get(tx_id)
    assert tx.amount == Decimal("80000")
    assert tx.pre_penalty_amount == Decimal("20000")
    assert tx.penalty_applied is True
    assert tx.penalty_applied_at == applied_at


@pytest.mark.asyncio
async def test_mark_penalized_is_noop_when_amount_changed_since_read(store):
    ledger = LedgerStore(store)
    tx_id = await ledger.append(make_tx(kind=TransactionKind.LOAN, category=Category.DHARURA, amount="20000"))

    changed = await ledger.mark_penalized(tx_id, Decimal("70000"), Decimal("10000"), datetime.now(timezone.utc))

    assert changed is False
    assert (await ledger.get(tx_id)).amount == Decimal("20000")


@pytest.mark.asyncio
async def test_mark_penalized_missing_transaction(store):
    with pytest.raises(NotFoundError):
        await LedgerStore(store).mark_penalized("gone", Decimal("1"), Decimal("0"), datetime.now(timezone.utc))


@pytest.mark.asyncio
async def test_ledger_over_sql_store(sql_store):
    ledger = LedgerStore(sql_store)
    tx_id = await ledger.append(make_tx(amount="1234.50"))

    tx = await ledger.get(tx_id)

    assert tx.amount == Decimal("1234.50")
    assert tx.occurred_at == datetime(2026, 1, 8, tzinfo=timezone.utc)

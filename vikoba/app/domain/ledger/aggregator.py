"""
Balance Aggregator.

Pure functions that replay transactions into member and group positions.
Nothing here is persisted: every balance is recomputed from the records
it is given, and the result does not depend on their order.

Only Completed transactions count. Stored loan amounts already include
interest, so loans are summed as stored and never re-priced here.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Union

from vikoba.app.core.exceptions import ValidationError
from vikoba.app.models.enums import (
    Category, TransactionKind, TransactionStatus, LOAN_CATEGORIES,
)
from vikoba.app.schemas.ledger import (
    GroupTotals, HisaStatement, LoanStatement, MemberBalance, MonthlyStatement,
    OutstandingMember, Transaction, ZERO,
)


def _counts(tx: Transaction) -> bool:
    return tx.status == TransactionStatus.COMPLETED


def _add(totals: Dict[str, Decimal], category: str, amount: Decimal) -> None:
    totals[category] = totals.get(category, ZERO) + amount


def _apply(balance: MemberBalance, tx: Transaction) -> None:
    category = tx.category.value
    if tx.kind == TransactionKind.CONTRIBUTION:
        _add(balance.contributed, category, tx.amount)
    elif tx.kind == TransactionKind.LOAN:
        _add(balance.loaned_gross, category, tx.amount)
        _add(balance.loaned_principal, category, tx.principal if tx.principal is not None else tx.amount)
    elif tx.kind == TransactionKind.REPAYMENT:
        _add(balance.repaid, category, tx.amount)


def member_balance(transactions: Iterable[Transaction], member_id: str) -> MemberBalance:
    balance = MemberBalance(member_id=member_id)
    for tx in transactions:
        if tx.member_id == member_id and _counts(tx):
            _apply(balance, tx)
    return balance


def member_balances(transactions: Iterable[Transaction]) -> Dict[str, MemberBalance]:
    """Balances of every member that appears in `transactions`."""
    balances: Dict[str, MemberBalance] = {}
    for tx in transactions:
        if not _counts(tx):
            continue
        if tx.member_id not in balances:
            balances[tx.member_id] = MemberBalance(member_id=tx.member_id)
        _apply(balances[tx.member_id], tx)
    return balances


def group_totals(transactions: Iterable[Transaction]) -> GroupTotals:
    balances = member_balances(transactions)
    totals = GroupTotals(member_count=len(balances))

    for balance in balances.values():
        for category, amount in balance.contributed.items():
            _add(totals.contributions_by_category, category, amount)
        for category, outstanding in balance.outstanding.items():
            _add(totals.outstanding_by_category, category, outstanding)
            if outstanding > 0:
                totals.active_loan_count += 1

    totals.total_contributions = sum(totals.contributions_by_category.values(), ZERO)
    totals.loan_pool = sum(totals.outstanding_by_category.values(), ZERO)
    totals.vault_balance = totals.total_contributions - totals.loan_pool
    return totals


def aggregate(
    transactions: Iterable[Transaction],
    member_id: Optional[str] = None,
) -> Union[MemberBalance, GroupTotals]:
    """
    Replay transactions into a position.

    Args:
        transactions: Any snapshot of the ledger, in any order
        member_id: Member to aggregate for; the whole group when omitted

    Returns:
        MemberBalance for a member, GroupTotals for the group
    """
    if member_id is not None:
        return member_balance(transactions, member_id)
    return group_totals(transactions)


def category_breakdown(
    transactions: Iterable[Transaction],
    member_id: str,
    kind: TransactionKind,
) -> Dict[str, Decimal]:
    breakdown: Dict[str, Decimal] = {}
    for tx in transactions:
        if tx.member_id == member_id and tx.kind == kind and _counts(tx):
            _add(breakdown, tx.category.value, tx.amount)
    return breakdown


def loan_amount_with_interest(principal: Decimal, category: Category, rate: Decimal) -> Decimal:
    """
    Amount stored for a new loan.

    Standard loans carry simple interest rounded half-up to a whole unit;
    every other category is stored at principal.
    """
    if Category(category) != Category.STANDARD:
        return principal
    return (principal * (1 + rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _month_bounds(year: int, month: int):
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12", details={"month": month})
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def monthly_statement(
    transactions: Iterable[Transaction],
    member_id: str,
    year: int,
    month: int,
) -> MonthlyStatement:
    """
    Statement of one member for one calendar month.

    Transactions dated after the month are ignored, so a statement for a
    past month does not change when later activity is recorded.
    """
    start, end = _month_bounds(year, month)
    hisa = HisaStatement()
    jamii_total = ZERO
    loans = {category.value: LoanStatement() for category in LOAN_CATEGORIES}

    for tx in transactions:
        if tx.member_id != member_id or not _counts(tx) or tx.occurred_at >= end:
            continue
        before = tx.occurred_at < start

        if tx.kind == TransactionKind.CONTRIBUTION and tx.category == Category.HISA:
            if before:
                hisa.opening_balance += tx.amount
            else:
                hisa.contributed_in_month += tx.amount
        elif tx.kind == TransactionKind.CONTRIBUTION and tx.category == Category.JAMII:
            jamii_total += tx.amount
        elif tx.kind == TransactionKind.LOAN:
            line = loans[tx.category.value]
            line.loaned_with_interest += tx.amount
            line.principal += tx.principal if tx.principal is not None else tx.amount
        elif tx.kind == TransactionKind.REPAYMENT:
            line = loans[tx.category.value]
            if before:
                line.repaid_before_month += tx.amount
            else:
                line.repaid_in_month += tx.amount

    hisa.closing_balance = hisa.opening_balance + hisa.contributed_in_month
    for line in loans.values():
        line.total_repaid = line.repaid_before_month + line.repaid_in_month
        line.remaining_balance = max(ZERO, line.loaned_with_interest - line.total_repaid)

    return MonthlyStatement(
        member_id=member_id,
        year=year,
        month=month,
        hisa=hisa,
        jamii_total=jamii_total,
        loans=loans,
    )


def members_with_outstanding(
    transactions: Iterable[Transaction],
    category: Optional[Category] = None,
) -> List[OutstandingMember]:
    """Members still owing money, largest debt first. Read-only summary for reminder systems."""
    transactions = list(transactions)
    names = {tx.member_id: tx.member_name for tx in transactions if tx.member_name}

    summary = []
    for member_id, balance in member_balances(transactions).items():
        outstanding = balance.outstanding
        owed = outstanding.get(category.value, ZERO) if category else balance.total_outstanding
        if owed <= 0:
            continue
        summary.append(OutstandingMember(
            member_id=member_id,
            member_name=names.get(member_id, ""),
            outstanding=outstanding,
            total_outstanding=balance.total_outstanding,
        ))

    summary.sort(key=lambda row: (-row.total_outstanding, row.member_id))
    return summary

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class TransactionFact:
    amount: Decimal
    type: str
    date: datetime
    category_name: Optional[str] = None
    category_color: Optional[str] = None


@dataclass(frozen=True)
class AccountFact:
    balance: Decimal
    type: str


@dataclass(frozen=True)
class PeriodSummary:
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    savings_rate: Decimal
    total_transactions: int
    period_start: datetime
    period_end: datetime


@dataclass(frozen=True)
class CategoryShare:
    category_name: str
    category_color: str
    total_amount: Decimal
    transaction_count: int
    percentage: Decimal


@dataclass(frozen=True)
class AccountTypeTotal:
    type: str
    count: int
    total_balance: Decimal


@dataclass(frozen=True)
class AccountsSummary:
    total_balance: Decimal
    total_accounts: int
    accounts_by_type: list[AccountTypeTotal]


def shift_months(value: datetime, months: int) -> datetime:
    month_index = (value.year * 12 + value.month - 1) + months
    year = month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


def resolve_period(
    start: datetime | None, end: datetime | None, now: datetime
) -> tuple[datetime, datetime]:
    """Fill in the default window: one calendar month back from `now`."""
    if start is None:
        start = shift_months(now, -1)
    if end is None:
        end = now
    if start > end:
        raise ValueError("Start date must be on or before end date.")
    return start, end


def round_rate(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def savings_rate(total_income: Decimal, total_expenses: Decimal) -> Decimal:
    if total_income <= ZERO:
        return round_rate(ZERO)
    return round_rate((total_income - total_expenses) / total_income * HUNDRED)


def percentage_of(part: Decimal, total: Decimal) -> Decimal:
    if total <= ZERO:
        return round_rate(ZERO)
    return round_rate(part / total * HUNDRED)


def summarize_period(
    transactions: Iterable[TransactionFact],
    start: datetime,
    end: datetime,
) -> PeriodSummary:
    if start > end:
        raise ValueError("Start date must be on or before end date.")

    income = ZERO
    expenses = ZERO
    count = 0
    for txn in transactions:
        if not start <= txn.date <= end:
            continue
        txn_type = txn.type.strip().lower()
        if txn_type == "income":
            income += _coerce_amount(txn.amount)
        elif txn_type == "expense":
            expenses += _coerce_amount(txn.amount)
        else:
            continue
        count += 1

    return PeriodSummary(
        total_income=income,
        total_expenses=expenses,
        balance=income - expenses,
        savings_rate=savings_rate(income, expenses),
        total_transactions=count,
        period_start=start,
        period_end=end,
    )


def breakdown_by_category(
    transactions: Iterable[TransactionFact],
    start: datetime,
    end: datetime,
) -> list[CategoryShare]:
    """Expense totals per (category name, color), largest first."""
    if start > end:
        raise ValueError("Start date must be on or before end date.")

    totals: dict[tuple[str, str], Decimal] = {}
    counts: dict[tuple[str, str], int] = {}
    for txn in transactions:
        if txn.type.strip().lower() != "expense":
            continue
        if not start <= txn.date <= end:
            continue
        key = (txn.category_name or "Uncategorized", txn.category_color or "")
        totals[key] = totals.get(key, ZERO) + _coerce_amount(txn.amount)
        counts[key] = counts.get(key, 0) + 1

    total_expenses = sum(totals.values(), ZERO)
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0][0]))
    return [
        CategoryShare(
            category_name=name,
            category_color=color,
            total_amount=total,
            transaction_count=counts[(name, color)],
            percentage=percentage_of(total, total_expenses),
        )
        for (name, color), total in ordered
    ]


def summarize_accounts(accounts: Iterable[AccountFact]) -> AccountsSummary:
    total = ZERO
    count = 0
    by_type: dict[str, list[Decimal]] = {}
    for account in accounts:
        balance = _coerce_amount(account.balance)
        total += balance
        count += 1
        by_type.setdefault(account.type, []).append(balance)

    return AccountsSummary(
        total_balance=total,
        total_accounts=count,
        accounts_by_type=[
            AccountTypeTotal(type=account_type, count=len(balances), total_balance=sum(balances, ZERO))
            for account_type, balances in sorted(by_type.items())
        ],
    )


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))

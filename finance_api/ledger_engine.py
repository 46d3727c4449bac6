from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

ZERO = Decimal("0")
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999999.99")


class TransactionType:
    INCOME = "income"
    EXPENSE = "expense"
    values = {INCOME, EXPENSE}
    # Numeric codes accepted by the /transactions/type/{type} route.
    codes = {"0": INCOME, "1": EXPENSE}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = str(value).strip().lower()
        normalized = cls.codes.get(normalized, normalized)
        if normalized not in cls.values:
            raise ValueError("Invalid transaction type. Use 'income' or 'expense'.")
        return normalized


@dataclass(frozen=True)
class LedgerEntry:
    """The part of a transaction that moves an account balance."""

    account_id: int
    amount: Decimal
    type: str


def quantize_amount(value: Decimal | float | int | str) -> Decimal:
    """Round to cents; money columns are NUMERIC(14, 2)."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        if not amount.is_finite():
            raise ValueError("Amount must be a number.")
        if abs(amount) > MAX_AMOUNT:
            raise ValueError("Amount cannot exceed 999999999999.99 in magnitude.")
        return amount.quantize(CENT, rounding=ROUND_HALF_EVEN)
    except InvalidOperation as exc:
        raise ValueError("Amount must be a number.") from exc


def validate_amount(value: Decimal | float | int | str) -> Decimal:
    amount = quantize_amount(value)
    if amount <= ZERO:
        raise ValueError("Amount must be greater than zero.")
    return amount


def balance_delta(entry: LedgerEntry) -> Decimal:
    """Signed effect of `entry` on its account: income adds, expense subtracts."""
    txn_type = TransactionType.validate(entry.type)
    amount = quantize_amount(entry.amount)
    return amount if txn_type == TransactionType.INCOME else -amount


def reversal_delta(entry: LedgerEntry) -> Decimal:
    return -balance_delta(entry)


def amendment_deltas(before: LedgerEntry, after: LedgerEntry) -> dict[int, Decimal]:
    """Per-account balance changes for replacing `before` with `after`.

    The old effect is reversed on the old account and the new effect applied on
    the new account; when both are the same account the two are netted. Accounts
    whose net change is zero are still listed so callers lock every touched row.
    """
    deltas: dict[int, Decimal] = {before.account_id: reversal_delta(before)}
    deltas[after.account_id] = deltas.get(after.account_id, ZERO) + balance_delta(after)
    return deltas


def check_category_type(transaction_type: str, category_type: str) -> None:
    if TransactionType.validate(transaction_type) != TransactionType.validate(category_type):
        raise ValueError(
            f"Category type '{category_type}' does not match transaction type '{transaction_type}'."
        )

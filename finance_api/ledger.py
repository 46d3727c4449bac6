"""Transaction lifecycle with account-balance maintenance.

Every method runs on the caller's connection, which must be inside an
`engine.begin()` block: the transaction row write and the balance write then
commit or roll back as one unit. Touched account rows are locked in id order
and their balances are changed with a relative `UPDATE`, so a concurrent
writer never overwrites a balance it read earlier.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy.engine import Connection, RowMapping

from finance_api.errors import NotFound, ValidationError
from finance_api.ledger_engine import (
    LedgerEntry,
    TransactionType,
    amendment_deltas,
    balance_delta,
    check_category_type,
    reversal_delta,
    validate_amount,
)
from finance_api.repository import AccountRepository, CategoryRepository, TransactionRepository

logger = logging.getLogger(__name__)

AMENDABLE_FIELDS = ("amount", "type", "account_id", "category_id", "description", "date")


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Ledger:
    def __init__(self, conn: Connection) -> None:
        self.conn = conn
        self.transactions = TransactionRepository(conn)
        self.accounts = AccountRepository(conn)
        self.categories = CategoryRepository(conn)

    def record(
        self,
        *,
        account_id: int,
        category_id: int,
        amount: Decimal | float | int | str,
        type: str,
        description: str = "",
        date: datetime | None = None,
    ) -> RowMapping:
        try:
            amount = validate_amount(amount)
            txn_type = TransactionType.validate(type)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        self._resolve_category(category_id, txn_type)
        locked = self.accounts.lock_many([account_id])
        account = locked.get(account_id)
        if account is None:
            raise ValidationError(f"Account {account_id} does not exist.")

        row = self.transactions.add(
            user_id=account["user_id"],
            account_id=account_id,
            category_id=category_id,
            amount=amount,
            type=txn_type,
            description=(description or "").strip(),
            date=to_naive_utc(date) if date else utc_now(),
        )
        entry = LedgerEntry(account_id=account_id, amount=amount, type=txn_type)
        self._apply({account_id: balance_delta(entry)})
        logger.info(
            "Recorded transaction %s: %s %s on account %s",
            row["id"], txn_type, amount, account_id,
        )
        return self.transactions.get_with_details(row["id"])

    def amend(self, transaction_id: int, patch: Mapping[str, Any]) -> RowMapping:
        existing = self.transactions.get(transaction_id, for_update=True)
        if existing is None:
            raise NotFound(f"Transaction {transaction_id} not found.")

        changes = {
            key: value
            for key, value in patch.items()
            if key in AMENDABLE_FIELDS and value is not None
        }
        merged = {key: existing[key] for key in AMENDABLE_FIELDS}
        merged.update(changes)

        try:
            merged["amount"] = validate_amount(merged["amount"])
            merged["type"] = TransactionType.validate(merged["type"])
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if "description" in changes:
            merged["description"] = merged["description"].strip()
        if "date" in changes:
            merged["date"] = to_naive_utc(merged["date"])

        self._resolve_category(merged["category_id"], merged["type"])

        before = LedgerEntry(
            account_id=existing["account_id"], amount=existing["amount"], type=existing["type"]
        )
        after = LedgerEntry(
            account_id=merged["account_id"], amount=merged["amount"], type=merged["type"]
        )
        locked = self.accounts.lock_many([before.account_id, after.account_id])
        if after.account_id not in locked:
            raise ValidationError(f"Account {after.account_id} does not exist.")

        self.transactions.update(
            transaction_id,
            user_id=locked[after.account_id]["user_id"],
            **merged,
        )
        self._apply(amendment_deltas(before, after))
        logger.info(
            "Amended transaction %s: %s %s on account %s -> %s %s on account %s",
            transaction_id,
            before.type, before.amount, before.account_id,
            after.type, after.amount, after.account_id,
        )
        return self.transactions.get_with_details(transaction_id)

    def retract(self, transaction_id: int) -> None:
        existing = self.transactions.get(transaction_id, for_update=True)
        if existing is None:
            raise NotFound(f"Transaction {transaction_id} not found.")

        entry = LedgerEntry(
            account_id=existing["account_id"], amount=existing["amount"], type=existing["type"]
        )
        self.accounts.lock_many([entry.account_id])
        self._apply({entry.account_id: reversal_delta(entry)})
        self.transactions.remove(transaction_id)
        logger.info(
            "Retracted transaction %s: %s %s on account %s",
            transaction_id, entry.type, entry.amount, entry.account_id,
        )

    def _resolve_category(self, category_id: int, txn_type: str) -> RowMapping:
        category = self.categories.get(category_id)
        if category is None:
            raise ValidationError(f"Category {category_id} does not exist.")
        try:
            check_category_type(txn_type, category["type"])
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return category

    def _apply(self, deltas: Mapping[int, Decimal]) -> None:
        for account_id, delta in deltas.items():
            if delta:
                self.accounts.adjust_balance(account_id, delta)

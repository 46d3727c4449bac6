"""Read-only summaries built from persisted ledger data."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from finance_api.aggregation_engine import (
    AccountFact,
    AccountsSummary,
    CategoryShare,
    PeriodSummary,
    TransactionFact,
    breakdown_by_category,
    summarize_accounts,
    summarize_period,
)
from finance_api.db import accounts, categories, transactions
from finance_api.errors import StorageError

logger = logging.getLogger(__name__)


def fetch_transaction_facts(
    conn: Connection,
    user_id: int,
    start: datetime,
    end: datetime,
    txn_type: str | None = None,
) -> list[TransactionFact]:
    conditions = [
        transactions.c.user_id == user_id,
        transactions.c.date >= start,
        transactions.c.date <= end,
    ]
    if txn_type is not None:
        conditions.append(transactions.c.type == txn_type)
    stmt = (
        select(
            transactions.c.amount,
            transactions.c.type,
            transactions.c.date,
            categories.c.name.label("category_name"),
            categories.c.color.label("category_color"),
        )
        .select_from(transactions.join(categories, transactions.c.category_id == categories.c.id))
        .where(*conditions)
    )
    try:
        rows = conn.execute(stmt).mappings().all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to load transactions for user %s", user_id)
        raise StorageError("Failed to load transactions.") from exc
    return [
        TransactionFact(
            amount=row["amount"],
            type=row["type"],
            date=row["date"],
            category_name=row["category_name"],
            category_color=row["category_color"],
        )
        for row in rows
    ]


def period_summary(conn: Connection, user_id: int, start: datetime, end: datetime) -> PeriodSummary:
    facts = fetch_transaction_facts(conn, user_id, start, end)
    return summarize_period(facts, start, end)


def category_breakdown(
    conn: Connection, user_id: int, start: datetime, end: datetime
) -> list[CategoryShare]:
    facts = fetch_transaction_facts(conn, user_id, start, end, txn_type="expense")
    return breakdown_by_category(facts, start, end)


def accounts_summary(conn: Connection, user_id: int) -> AccountsSummary:
    stmt = select(accounts.c.balance, accounts.c.type).where(accounts.c.user_id == user_id)
    try:
        rows = conn.execute(stmt).mappings().all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to load accounts for user %s", user_id)
        raise StorageError("Failed to load accounts.") from exc
    return summarize_accounts(AccountFact(balance=row["balance"], type=row["type"]) for row in rows)

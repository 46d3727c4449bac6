"""Table-backed repositories.

A `Repository` wraps one SQLAlchemy `Table` and an open `Connection`. It never
commits: callers own the unit of work through `engine.begin()`, so several
repository calls made on the same connection commit or roll back together.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Sequence

from sqlalchemy import Table, func, insert, select, update
from sqlalchemy.engine import Connection, RowMapping
from sqlalchemy.sql import ColumnElement

from finance_api.db import accounts, categories, transactions, users


class Repository:
    """get / find / add / update / remove / count / exists for one table."""

    def __init__(self, conn: Connection, table: Table) -> None:
        self.conn = conn
        self.table = table
        self.pk = table.c.id

    def get(self, entity_id: int, *, for_update: bool = False) -> RowMapping | None:
        stmt = select(self.table).where(self.pk == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.conn.execute(stmt).mappings().first()

    def find(
        self,
        *conditions: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[RowMapping]:
        stmt = select(self.table).where(*conditions)
        stmt = stmt.order_by(*order_by) if order_by else stmt.order_by(self.pk.asc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.conn.execute(stmt).mappings().all())

    def add(self, **values: Any) -> RowMapping:
        stmt = insert(self.table).values(**values).returning(*self.table.c)
        return self.conn.execute(stmt).mappings().one()

    def update(self, entity_id: int, **values: Any) -> RowMapping | None:
        if not values:
            return self.get(entity_id)
        stmt = (
            update(self.table)
            .where(self.pk == entity_id)
            .values(**values)
            .returning(*self.table.c)
        )
        return self.conn.execute(stmt).mappings().first()

    def remove(self, entity_id: int) -> bool:
        result = self.conn.execute(self.table.delete().where(self.pk == entity_id))
        return result.rowcount > 0

    def count(self, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.table).where(*conditions)
        return int(self.conn.execute(stmt).scalar_one())

    def exists(self, entity_id: int) -> bool:
        stmt = select(self.pk).where(self.pk == entity_id).limit(1)
        return self.conn.execute(stmt).first() is not None


class UserRepository(Repository):
    def __init__(self, conn: Connection) -> None:
        super().__init__(conn, users)

    def find_by_login(self, username_or_email: str) -> RowMapping | None:
        value = username_or_email.strip()
        stmt = select(users).where(
            (users.c.username == value) | (users.c.email == value.lower())
        )
        return self.conn.execute(stmt).mappings().first()

    def find_conflict(self, username: str, email: str) -> RowMapping | None:
        stmt = select(users).where((users.c.username == username) | (users.c.email == email))
        return self.conn.execute(stmt).mappings().first()


class CategoryRepository(Repository):
    def __init__(self, conn: Connection) -> None:
        super().__init__(conn, categories)

    def by_type(self, category_type: str) -> list[RowMapping]:
        return self.find(categories.c.type == category_type, order_by=(categories.c.name.asc(),))

    def transaction_count(self, category_id: int) -> int:
        stmt = select(func.count()).where(transactions.c.category_id == category_id)
        return int(self.conn.execute(stmt).scalar_one())

    def has_transactions(self, category_id: int) -> bool:
        stmt = select(transactions.c.id).where(transactions.c.category_id == category_id).limit(1)
        return self.conn.execute(stmt).first() is not None


class AccountRepository(Repository):
    def __init__(self, conn: Connection) -> None:
        super().__init__(conn, accounts)

    def lock_many(self, account_ids: Iterable[int]) -> dict[int, RowMapping]:
        """Lock account rows in ascending id order and return them by id."""
        locked: dict[int, RowMapping] = {}
        for account_id in sorted(set(account_ids)):
            row = self.get(account_id, for_update=True)
            if row is not None:
                locked[account_id] = row
        return locked

    def adjust_balance(self, account_id: int, delta: Decimal) -> None:
        """Add `delta` to the stored balance inside the UPDATE itself."""
        self.conn.execute(
            update(accounts)
            .where(accounts.c.id == account_id)
            .values(balance=accounts.c.balance + delta)
        )

    def transaction_count(self, account_id: int) -> int:
        stmt = select(func.count()).where(transactions.c.account_id == account_id)
        return int(self.conn.execute(stmt).scalar_one())

    def has_transactions(self, account_id: int) -> bool:
        stmt = select(transactions.c.id).where(transactions.c.account_id == account_id).limit(1)
        return self.conn.execute(stmt).first() is not None


TRANSACTION_DETAIL_COLUMNS = (
    *transactions.c,
    categories.c.name.label("category_name"),
    categories.c.color.label("category_color"),
    accounts.c.name.label("account_name"),
    accounts.c.type.label("account_type"),
)


class TransactionRepository(Repository):
    def __init__(self, conn: Connection) -> None:
        super().__init__(conn, transactions)

    def _detail_select(self):
        return select(*TRANSACTION_DETAIL_COLUMNS).select_from(
            transactions.join(categories, transactions.c.category_id == categories.c.id).join(
                accounts, transactions.c.account_id == accounts.c.id
            )
        )

    def get_with_details(self, transaction_id: int) -> RowMapping | None:
        stmt = self._detail_select().where(transactions.c.id == transaction_id)
        return self.conn.execute(stmt).mappings().first()

    def list_with_details(
        self,
        *conditions: ColumnElement[bool],
        offset: int = 0,
        limit: int | None = None,
    ) -> list[RowMapping]:
        stmt = (
            self._detail_select()
            .where(*conditions)
            .order_by(transactions.c.date.desc(), transactions.c.id.desc())
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.conn.execute(stmt).mappings().all())

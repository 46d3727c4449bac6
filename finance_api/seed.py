from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import insert, select
from sqlalchemy.engine import Connection

from finance_api.auth import UserRole, hash_password
from finance_api.db import categories, users
from finance_api.ledger import Ledger, utc_now
from finance_api.repository import AccountRepository, UserRepository

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"name": "Salary", "color": "#4CAF50", "icon": "work", "type": "income", "monthly_budget": None},
    {"name": "Freelance", "color": "#8BC34A", "icon": "computer", "type": "income", "monthly_budget": None},
    {"name": "Investments", "color": "#CDDC39", "icon": "show_chart", "type": "income", "monthly_budget": None},
    {"name": "Gifts", "color": "#FFEB3B", "icon": "card_giftcard", "type": "income", "monthly_budget": None},
    {"name": "Bonus", "color": "#FFC107", "icon": "military_tech", "type": "income", "monthly_budget": None},
    {"name": "Dividends", "color": "#FF9800", "icon": "account_balance", "type": "income", "monthly_budget": None},
    {"name": "Groceries", "color": "#F44336", "icon": "local_grocery_store", "type": "expense", "monthly_budget": Decimal("500.00")},
    {"name": "Transport", "color": "#E91E63", "icon": "directions_car", "type": "expense", "monthly_budget": Decimal("150.00")},
    {"name": "Entertainment", "color": "#9C27B0", "icon": "local_movies", "type": "expense", "monthly_budget": Decimal("100.00")},
    {"name": "Housing", "color": "#673AB7", "icon": "apartment", "type": "expense", "monthly_budget": Decimal("1200.00")},
    {"name": "Health", "color": "#3F51B5", "icon": "favorite", "type": "expense", "monthly_budget": Decimal("100.00")},
    {"name": "Clothing", "color": "#2196F3", "icon": "checkroom", "type": "expense", "monthly_budget": Decimal("150.00")},
    {"name": "Restaurants", "color": "#03A9F4", "icon": "restaurant", "type": "expense", "monthly_budget": Decimal("120.00")},
    {"name": "Education", "color": "#00BCD4", "icon": "school", "type": "expense", "monthly_budget": Decimal("60.00")},
    {"name": "Phone & Internet", "color": "#009688", "icon": "smartphone", "type": "expense", "monthly_budget": Decimal("30.00")},
]

DEMO_USERS = [
    {"username": "admin", "email": "admin@finance.local", "password": "Admin123!", "role": UserRole.ADMIN},
    {"username": "demo", "email": "demo@finance.local", "password": "Demo123!", "role": UserRole.USER},
]


def ensure_default_categories(conn: Connection) -> None:
    existing = conn.execute(select(categories.c.id).limit(1)).first()
    if existing:
        return
    conn.execute(insert(categories), DEFAULT_CATEGORIES)
    logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))


def seed_demo_data(conn: Connection, currency: str) -> None:
    """Create demo users with one account and one salary each.

    Does nothing once any user exists. Salaries go through the ledger so the
    seeded balances satisfy the same invariant as user-entered data.
    """
    if conn.execute(select(users.c.id).limit(1)).first():
        return

    user_repo = UserRepository(conn)
    account_repo = AccountRepository(conn)
    ledger = Ledger(conn)
    salary = conn.execute(
        select(categories.c.id).where(categories.c.name == "Salary", categories.c.type == "income")
    ).scalar_one_or_none()

    now = utc_now()
    for index, demo in enumerate(DEMO_USERS):
        user = user_repo.add(
            username=demo["username"],
            email=demo["email"],
            password_hash=hash_password(demo["password"]),
            role=demo["role"],
            created_at=now,
        )
        account = account_repo.add(
            user_id=user["id"],
            name="Main card",
            balance=Decimal("0.00"),
            currency=currency,
            type="bank_card",
        )
        if salary is not None:
            ledger.record(
                account_id=account["id"],
                category_id=salary,
                amount=Decimal("3000.00") if index == 0 else Decimal("1800.00"),
                type="income",
                description="Monthly salary",
                date=now - timedelta(days=10 - index * 2),
            )
    logger.info("Seeded demo users: %s", ", ".join(demo["username"] for demo in DEMO_USERS))

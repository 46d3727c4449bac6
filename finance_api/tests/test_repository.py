import unittest
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from finance_api.db import accounts, create_db_engine, init_db
from finance_api.repository import AccountRepository, CategoryRepository, UserRepository
from finance_api.seed import DEFAULT_CATEGORIES, ensure_default_categories, seed_demo_data


class RepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_db_engine("sqlite://")
        init_db(self.engine)
        with self.engine.begin() as conn:
            self.user_id = UserRepository(conn).add(
                username="bob", email="bob@example.com", password_hash="x", created_at=datetime(2024, 1, 1)
            )["id"]

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_crud_cycle(self) -> None:
        with self.engine.begin() as conn:
            repo = AccountRepository(conn)
            row = repo.add(user_id=self.user_id, name="Cash", balance=Decimal("10"), currency="USD", type="cash")
            self.assertTrue(repo.exists(row["id"]))

            updated = repo.update(row["id"], name="Pocket")
            self.assertEqual(updated["name"], "Pocket")
            self.assertEqual(repo.count(accounts.c.user_id == self.user_id), 1)

            self.assertTrue(repo.remove(row["id"]))
            self.assertFalse(repo.remove(row["id"]))
            self.assertIsNone(repo.get(row["id"]))

    def test_update_missing_returns_none(self) -> None:
        with self.engine.begin() as conn:
            self.assertIsNone(AccountRepository(conn).update(404, name="nope"))

    def test_list_pagination(self) -> None:
        with self.engine.begin() as conn:
            repo = AccountRepository(conn)
            for index in range(5):
                repo.add(user_id=self.user_id, name=f"A{index}", currency="USD", type="cash")

            page = repo.find(order_by=(accounts.c.name.asc(),), offset=2, limit=2)

        self.assertEqual([row["name"] for row in page], ["A2", "A3"])

    def test_lock_many_skips_missing(self) -> None:
        with self.engine.begin() as conn:
            repo = AccountRepository(conn)
            first = repo.add(user_id=self.user_id, name="A", currency="USD", type="cash")["id"]

            locked = repo.lock_many([first, 999, first])

        self.assertEqual(list(locked), [first])

    def test_adjust_balance_is_relative_to_stored_value(self) -> None:
        with self.engine.begin() as conn:
            repo = AccountRepository(conn)
            account_id = repo.add(
                user_id=self.user_id, name="Cash", balance=Decimal("10.00"), currency="USD", type="cash"
            )["id"]
            stale = repo.get(account_id)
            repo.adjust_balance(account_id, Decimal("5.25"))
            repo.adjust_balance(account_id, Decimal("-1.00"))
            balance = Decimal(str(repo.get(account_id)["balance"]))

        self.assertEqual(Decimal(str(stale["balance"])), Decimal("10.00"))
        self.assertEqual(balance, Decimal("14.25"))

    def test_find_by_login_matches_username_or_email(self) -> None:
        with self.engine.begin() as conn:
            repo = UserRepository(conn)
            self.assertEqual(repo.find_by_login("bob")["id"], self.user_id)
            self.assertEqual(repo.find_by_login("BOB@example.com")["id"], self.user_id)
            self.assertIsNone(repo.find_by_login("carol"))

    def test_foreign_keys_are_enforced(self) -> None:
        with self.assertRaises(IntegrityError):
            with self.engine.begin() as conn:
                AccountRepository(conn).add(user_id=999, name="Ghost", currency="USD", type="cash")


class SeedTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_db_engine("sqlite://")
        init_db(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_default_categories_seeded_once(self) -> None:
        with self.engine.begin() as conn:
            ensure_default_categories(conn)
            ensure_default_categories(conn)
            repo = CategoryRepository(conn)
            self.assertEqual(repo.count(), len(DEFAULT_CATEGORIES))
            self.assertEqual(len(repo.by_type("income")), 6)

    def test_demo_data_balances_match_ledger(self) -> None:
        with self.engine.begin() as conn:
            ensure_default_categories(conn)
            seed_demo_data(conn, "USD")
            seed_demo_data(conn, "USD")
            self.assertEqual(UserRepository(conn).count(), 2)
            balances = sorted(Decimal(str(row["balance"])) for row in AccountRepository(conn).find())

        self.assertEqual(balances, [Decimal("1800.00"), Decimal("3000.00")])


if __name__ == "__main__":
    unittest.main()

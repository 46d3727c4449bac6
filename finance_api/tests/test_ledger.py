import tempfile
import threading
import unittest
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

from finance_api.db import create_db_engine, init_db
from finance_api.errors import NotFound, ValidationError
from finance_api.ledger import Ledger
from finance_api.repository import AccountRepository, CategoryRepository, TransactionRepository, UserRepository
from finance_api.reports import category_breakdown, period_summary


class LedgerFixture(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_db_engine("sqlite://")
        init_db(self.engine)
        with self.engine.begin() as conn:
            user = UserRepository(conn).add(
                username="alice",
                email="alice@example.com",
                password_hash="x",
                role="User",
                created_at=datetime(2024, 1, 1),
            )
            self.user_id = user["id"]
            accounts = AccountRepository(conn)
            self.account_id = accounts.add(
                user_id=self.user_id, name="Wallet", balance=Decimal("0"), currency="USD", type="cash"
            )["id"]
            self.other_account_id = accounts.add(
                user_id=self.user_id, name="Card", balance=Decimal("100"), currency="USD", type="bank_card"
            )["id"]
            categories = CategoryRepository(conn)
            self.salary_id = categories.add(name="Salary", color="#4CAF50", icon="work", type="income")["id"]
            self.food_id = categories.add(name="Food", color="#F44336", icon="food", type="expense")["id"]

    def tearDown(self) -> None:
        self.engine.dispose()

    def balance(self, account_id: int) -> Decimal:
        with self.engine.begin() as conn:
            return Decimal(str(AccountRepository(conn).get(account_id)["balance"]))

    def record(self, **overrides):
        values = {
            "account_id": self.account_id,
            "category_id": self.food_id,
            "amount": Decimal("500"),
            "type": "expense",
            "date": datetime(2024, 5, 10),
        }
        values.update(overrides)
        with self.engine.begin() as conn:
            return Ledger(conn).record(**values)


class LedgerTests(LedgerFixture):
    def test_income_adds_and_expense_subtracts(self) -> None:
        self.record(category_id=self.salary_id, type="income", amount=Decimal("250.00"))
        self.assertEqual(self.balance(self.account_id), Decimal("250.00"))

        self.record(amount=Decimal("75.25"))
        self.assertEqual(self.balance(self.account_id), Decimal("174.75"))

    def test_record_returns_joined_row_owned_by_account_owner(self) -> None:
        row = self.record(description="  lunch  ")

        self.assertEqual(row["user_id"], self.user_id)
        self.assertEqual(row["category_name"], "Food")
        self.assertEqual(row["account_name"], "Wallet")
        self.assertEqual(row["description"], "lunch")

    def test_expense_lifecycle_scenario(self) -> None:
        row = self.record(amount=Decimal("500"))
        self.assertEqual(self.balance(self.account_id), Decimal("-500.00"))

        with self.engine.begin() as conn:
            Ledger(conn).amend(row["id"], {"amount": Decimal("300")})
        self.assertEqual(self.balance(self.account_id), Decimal("-300.00"))

        with self.engine.begin() as conn:
            Ledger(conn).retract(row["id"])
        self.assertEqual(self.balance(self.account_id), Decimal("0.00"))
        with self.engine.begin() as conn:
            self.assertIsNone(TransactionRepository(conn).get(row["id"]))

    def test_retract_restores_balance(self) -> None:
        before = self.balance(self.other_account_id)
        row = self.record(account_id=self.other_account_id, category_id=self.salary_id, type="income", amount="42.10")

        with self.engine.begin() as conn:
            Ledger(conn).retract(row["id"])

        self.assertEqual(self.balance(self.other_account_id), before)

    def test_amend_moving_account_updates_both_balances(self) -> None:
        row = self.record(amount=Decimal("40"))

        with self.engine.begin() as conn:
            Ledger(conn).amend(row["id"], {"account_id": self.other_account_id})

        self.assertEqual(self.balance(self.account_id), Decimal("0.00"))
        self.assertEqual(self.balance(self.other_account_id), Decimal("60.00"))

    def test_amend_switching_type_and_category(self) -> None:
        row = self.record(amount=Decimal("20"))

        with self.engine.begin() as conn:
            amended = Ledger(conn).amend(row["id"], {"type": "income", "category_id": self.salary_id})

        self.assertEqual(amended["type"], "income")
        self.assertEqual(self.balance(self.account_id), Decimal("20.00"))

    def test_rejects_non_positive_amount(self) -> None:
        with self.assertRaises(ValidationError):
            self.record(amount=Decimal("0"))
        self.assertEqual(self.balance(self.account_id), Decimal("0.00"))

    def test_rejects_missing_references(self) -> None:
        with self.assertRaises(ValidationError):
            self.record(account_id=9999)
        with self.assertRaises(ValidationError):
            self.record(category_id=9999)
        with self.engine.begin() as conn:
            self.assertEqual(TransactionRepository(conn).count(), 0)

    def test_rejects_category_type_mismatch(self) -> None:
        with self.assertRaises(ValidationError):
            self.record(category_id=self.salary_id, type="expense")

    def test_failed_amend_leaves_balances_untouched(self) -> None:
        row = self.record(amount=Decimal("10"))

        with self.assertRaises(ValidationError):
            with self.engine.begin() as conn:
                Ledger(conn).amend(row["id"], {"account_id": 9999})

        self.assertEqual(self.balance(self.account_id), Decimal("-10.00"))

    def test_amend_and_retract_unknown_transaction(self) -> None:
        with self.engine.begin() as conn:
            with self.assertRaises(NotFound):
                Ledger(conn).amend(12345, {"amount": Decimal("1")})
            with self.assertRaises(NotFound):
                Ledger(conn).retract(12345)


class ReportTests(LedgerFixture):
    def test_period_summary_from_storage(self) -> None:
        self.record(category_id=self.salary_id, type="income", amount="1000", date=datetime(2024, 5, 2))
        self.record(category_id=self.salary_id, type="income", amount="500", date=datetime(2024, 5, 3))
        self.record(amount="300", date=datetime(2024, 5, 4))
        self.record(category_id=self.salary_id, type="income", amount="10000", date=datetime(2024, 3, 1))

        with self.engine.begin() as conn:
            summary = period_summary(conn, self.user_id, datetime(2024, 5, 1), datetime(2024, 5, 31))

        self.assertEqual(summary.total_income, Decimal("1500.00"))
        self.assertEqual(summary.total_expenses, Decimal("300.00"))
        self.assertEqual(summary.balance, Decimal("1200.00"))
        self.assertEqual(summary.savings_rate, Decimal("80.00"))
        self.assertEqual(summary.total_transactions, 3)

    def test_category_breakdown_from_storage(self) -> None:
        self.record(amount="30", date=datetime(2024, 5, 4))
        self.record(amount="10", date=datetime(2024, 5, 5))

        with self.engine.begin() as conn:
            shares = category_breakdown(conn, self.user_id, datetime(2024, 5, 1), datetime(2024, 5, 31))

        self.assertEqual(len(shares), 1)
        self.assertEqual(shares[0].category_name, "Food")
        self.assertEqual(Decimal(str(shares[0].total_amount)), Decimal("40.00"))
        self.assertEqual(shares[0].percentage, Decimal("100.00"))


class ConcurrentWriterTests(unittest.TestCase):
    """Two writers on one account of a file-backed SQLite database."""

    def setUp(self) -> None:
        directory = tempfile.TemporaryDirectory()
        self.addCleanup(directory.cleanup)
        self.engine = create_db_engine(f"sqlite:///{directory.name}/ledger.db")
        self.addCleanup(self.engine.dispose)
        init_db(self.engine)
        with self.engine.begin() as conn:
            user_id = UserRepository(conn).add(
                username="carol", email="carol@example.com", password_hash="x", created_at=datetime(2024, 1, 1)
            )["id"]
            self.account_id = AccountRepository(conn).add(
                user_id=user_id, name="Shared", balance=Decimal("0"), currency="USD", type="cash"
            )["id"]
            self.salary_id = CategoryRepository(conn).add(
                name="Salary", color="#4CAF50", icon="work", type="income"
            )["id"]

    def record_income(self, amount: str, errors: list) -> None:
        try:
            with self.engine.begin() as conn:
                Ledger(conn).record(
                    account_id=self.account_id, category_id=self.salary_id, amount=amount, type="income"
                )
        except Exception as exc:  # reported by the errors assertion
            errors.append(exc)

    def test_paused_writer_does_not_lose_concurrent_update(self) -> None:
        first_locked = threading.Event()
        release_first = threading.Event()
        original_lock_many = AccountRepository.lock_many

        def lock_then_pause(repo, account_ids):
            locked = original_lock_many(repo, account_ids)
            if threading.current_thread().name == "first-writer":
                first_locked.set()
                release_first.wait(timeout=2)
            return locked

        errors: list = []
        with patch.object(AccountRepository, "lock_many", lock_then_pause):
            first = threading.Thread(
                target=self.record_income, args=("100", errors), name="first-writer"
            )
            second = threading.Thread(
                target=self.record_income, args=("50", errors), name="second-writer"
            )
            first.start()
            self.assertTrue(first_locked.wait(timeout=5))
            second.start()
            second.join(timeout=0.5)
            release_first.set()
            first.join(timeout=10)
            second.join(timeout=10)

        self.assertEqual(errors, [])
        with self.engine.begin() as conn:
            balance = Decimal(str(AccountRepository(conn).get(self.account_id)["balance"]))
            count = TransactionRepository(conn).count()
        self.assertEqual(balance, Decimal("150.00"))
        self.assertEqual(count, 2)


if __name__ == "__main__":
    unittest.main()

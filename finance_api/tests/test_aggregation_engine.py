import unittest
from datetime import datetime
from decimal import Decimal

from finance_api.aggregation_engine import (
    AccountFact,
    TransactionFact,
    breakdown_by_category,
    resolve_period,
    savings_rate,
    shift_months,
    summarize_accounts,
    summarize_period,
)

START = datetime(2024, 5, 1)
END = datetime(2024, 5, 31, 23, 59, 59)


class PeriodSummaryTests(unittest.TestCase):
    def test_totals_only_count_transactions_in_range(self) -> None:
        transactions = [
            TransactionFact(amount=Decimal("1000"), type="income", date=datetime(2024, 5, 2)),
            TransactionFact(amount=Decimal("500"), type="income", date=datetime(2024, 5, 10)),
            TransactionFact(amount=Decimal("300"), type="expense", date=datetime(2024, 5, 12)),
            TransactionFact(amount=Decimal("10000"), type="income", date=datetime(2024, 4, 30)),
        ]

        summary = summarize_period(transactions, START, END)

        self.assertEqual(summary.total_income, Decimal("1500"))
        self.assertEqual(summary.total_expenses, Decimal("300"))
        self.assertEqual(summary.balance, Decimal("1200"))
        self.assertEqual(summary.savings_rate, Decimal("80.00"))
        self.assertEqual(summary.total_transactions, 3)
        self.assertEqual(summary.period_start, START)
        self.assertEqual(summary.period_end, END)

    def test_zero_income_gives_zero_savings_rate(self) -> None:
        transactions = [
            TransactionFact(amount=Decimal("45"), type="expense", date=datetime(2024, 5, 3)),
        ]

        summary = summarize_period(transactions, START, END)

        self.assertEqual(summary.savings_rate, Decimal("0.00"))
        self.assertEqual(summary.balance, Decimal("-45"))

    def test_savings_rate_can_be_negative(self) -> None:
        self.assertEqual(savings_rate(Decimal("100"), Decimal("150")), Decimal("-50.00"))

    def test_range_bounds_are_inclusive(self) -> None:
        transactions = [
            TransactionFact(amount=Decimal("10"), type="income", date=START),
            TransactionFact(amount=Decimal("5"), type="expense", date=END),
        ]

        summary = summarize_period(transactions, START, END)

        self.assertEqual(summary.total_transactions, 2)

    def test_start_after_end_rejected(self) -> None:
        with self.assertRaises(ValueError):
            summarize_period([], END, START)


class CategoryBreakdownTests(unittest.TestCase):
    def test_groups_expenses_by_name_and_color(self) -> None:
        transactions = [
            TransactionFact(Decimal("60"), "expense", datetime(2024, 5, 2), "Food", "#F44336"),
            TransactionFact(Decimal("15"), "expense", datetime(2024, 5, 3), "Food", "#F44336"),
            TransactionFact(Decimal("25"), "expense", datetime(2024, 5, 4), "Travel", "#2196F3"),
            TransactionFact(Decimal("900"), "income", datetime(2024, 5, 4), "Salary", "#4CAF50"),
            TransactionFact(Decimal("70"), "expense", datetime(2024, 6, 4), "Travel", "#2196F3"),
        ]

        shares = breakdown_by_category(transactions, START, END)

        self.assertEqual([share.category_name for share in shares], ["Food", "Travel"])
        self.assertEqual(shares[0].total_amount, Decimal("75"))
        self.assertEqual(shares[0].transaction_count, 2)
        self.assertEqual(shares[0].percentage, Decimal("75.00"))
        self.assertEqual(shares[1].percentage, Decimal("25.00"))

    def test_percentages_sum_to_hundred(self) -> None:
        transactions = [
            TransactionFact(Decimal("10"), "expense", datetime(2024, 5, 2), name, "#000000")
            for name in ("A", "B", "C")
        ]

        shares = breakdown_by_category(transactions, START, END)
        total = sum(share.percentage for share in shares)

        self.assertLessEqual(abs(total - Decimal("100")), Decimal("0.05"))

    def test_no_expenses_gives_empty_breakdown(self) -> None:
        transactions = [
            TransactionFact(Decimal("10"), "income", datetime(2024, 5, 2), "Salary", "#4CAF50"),
        ]

        self.assertEqual(breakdown_by_category(transactions, START, END), [])


class AccountsSummaryTests(unittest.TestCase):
    def test_totals_by_type(self) -> None:
        summary = summarize_accounts(
            [
                AccountFact(balance=Decimal("100.50"), type="cash"),
                AccountFact(balance=Decimal("-20.00"), type="credit_card"),
                AccountFact(balance=Decimal("50.00"), type="cash"),
            ]
        )

        self.assertEqual(summary.total_balance, Decimal("130.50"))
        self.assertEqual(summary.total_accounts, 3)
        by_type = {item.type: item for item in summary.accounts_by_type}
        self.assertEqual(by_type["cash"].count, 2)
        self.assertEqual(by_type["cash"].total_balance, Decimal("150.50"))
        self.assertEqual(by_type["credit_card"].total_balance, Decimal("-20.00"))


class PeriodResolutionTests(unittest.TestCase):
    def test_defaults_to_one_month_back(self) -> None:
        now = datetime(2024, 3, 31, 12, 0)

        start, end = resolve_period(None, None, now)

        self.assertEqual(start, datetime(2024, 2, 29, 12, 0))
        self.assertEqual(end, now)

    def test_shift_months_crosses_year(self) -> None:
        self.assertEqual(shift_months(datetime(2024, 1, 15), -1), datetime(2023, 12, 15))

    def test_rejects_inverted_range(self) -> None:
        with self.assertRaises(ValueError):
            resolve_period(datetime(2024, 6, 1), datetime(2024, 5, 1), datetime(2024, 6, 2))


if __name__ == "__main__":
    unittest.main()

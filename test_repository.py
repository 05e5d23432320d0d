"""
Unit tests for transaction repositories
"""

import os
import tempfile
import unittest
from datetime import date

from repository import (
    CsvTransactionRepository,
    InMemoryTransactionRepository,
    parse_transaction,
    parse_transactions,
)
from spendcast import Transaction


CSV_ROWS = """id,user_id,date,amount,type,description,category_name,status
t1,u1,2024-01-05,549,expense,Netflix,Entertainment,completed
t2,u1,2024-02-05,549,expense,Netflix,Entertainment,completed
t3,u1,2024-01-01,10000,income,Salary,,completed
t4,u1,2024-02-10,300,expense,Groceries,Food,pending
t5,u2,2024-02-10,800,expense,Rent,Housing,completed
t6,u1,2024-02-11,-20,expense,Refund,Food,completed
t7,u1,2023-06-01,75,expense,Old charge,Food,completed
t8,u1,2024-02-12,60,cash_in,,,
"""


class TestParseTransaction(unittest.TestCase):
    """Test row parsing."""

    def test_type_and_category_name(self):
        t = parse_transaction({
            "id": "a", "date": "2024-03-05", "amount": "12.5",
            "type": "Expense", "description": " Coffee ", "category_name": "Food"
        })

        self.assertEqual(t.date, date(2024, 3, 5))
        self.assertEqual(t.amount, 12.5)
        self.assertEqual(t.kind, "expense")
        self.assertEqual(t.description, "Coffee")
        self.assertEqual(t.category, "Food")

    def test_kind_and_category_aliases(self):
        t = parse_transaction({"id": "b", "date": date(2024, 3, 5), "amount": 10,
                               "kind": "cash_in", "category": "Gifts"})

        self.assertEqual(t.kind, "cash_in")
        self.assertEqual(t.category, "Gifts")
        self.assertEqual(t.description, "")

    def test_missing_fields(self):
        with self.assertRaises(ValueError):
            parse_transaction({"id": "c", "amount": 10, "type": "expense"})
        with self.assertRaises(ValueError):
            parse_transaction({"id": "c", "date": "2024-01-01", "type": "expense"})

    def test_invalid_rows_skipped(self):
        records = [
            {"id": "ok", "date": "2024-01-01", "amount": 5, "type": "expense"},
            {"id": "neg", "date": "2024-01-01", "amount": -5, "type": "expense"},
            {"id": "bad", "date": "2024-01-01", "amount": 5, "type": "transfer"},
        ]
        with self.assertLogs("repository", level="WARNING") as logs:
            transactions = parse_transactions(records)

        self.assertEqual([t.id for t in transactions], ["ok"])
        self.assertEqual(len(logs.output), 2)


class TestInMemoryTransactionRepository(unittest.IsolatedAsyncioTestCase):
    """Test InMemoryTransactionRepository functionality."""

    async def test_filters_user_and_start_date(self):
        repository = InMemoryTransactionRepository({
            "u1": [
                Transaction("b", date(2024, 2, 1), 10, "expense"),
                Transaction("a", date(2024, 1, 1), 10, "expense"),
                Transaction("old", date(2023, 1, 1), 10, "expense"),
            ]
        })

        transactions = await repository.fetch_transactions("u1", date(2023, 12, 1))
        self.assertEqual([t.id for t in transactions], ["a", "b"])
        self.assertEqual(await repository.fetch_transactions("nobody", date(2023, 12, 1)), [])


class TestCsvTransactionRepository(unittest.IsolatedAsyncioTestCase):
    """Test CsvTransactionRepository functionality."""

    def setUp(self):
        handle, self.path = tempfile.mkstemp(suffix=".csv")
        with os.fdopen(handle, "w") as fp:
            fp.write(CSV_ROWS)
        self.repository = CsvTransactionRepository(self.path)

    def tearDown(self):
        os.remove(self.path)

    async def test_fetch_completed_rows(self):
        with self.assertLogs("repository", level="WARNING"):
            transactions = await self.repository.fetch_transactions("u1", date(2023, 12, 1))

        self.assertEqual([t.id for t in transactions], ["t3", "t1", "t2", "t8"])

    async def test_optional_fields(self):
        with self.assertLogs("repository", level="WARNING"):
            transactions = await self.repository.fetch_transactions("u1", date(2023, 12, 1))
        by_id = {t.id: t for t in transactions}

        self.assertIsNone(by_id["t3"].category)
        self.assertEqual(by_id["t8"].description, "")
        self.assertEqual(by_id["t1"].amount, 549.0)

    async def test_other_user(self):
        transactions = await self.repository.fetch_transactions("u2", date(2023, 12, 1))
        self.assertEqual([t.id for t in transactions], ["t5"])

    def test_missing_columns(self):
        with open(self.path, "w") as fp:
            fp.write("id,date,amount\n1,2024-01-01,5\n")
        with self.assertRaises(ValueError):
            self.repository.load_frame()


if __name__ == '__main__':
    unittest.main()

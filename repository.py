"""
Transaction repositories for the forecasting engine.

Both repositories are read-only and return completed transactions for one
user on or after a start date, oldest first.
"""

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from spendcast import Transaction, chronological

logger = logging.getLogger(__name__)

COMPLETED_STATUS = "completed"


def _clean(value: Any) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def parse_transaction(record: Dict[str, Any]) -> Transaction:
    """
    Build a Transaction from a loosely-typed row.

    Accepts either `type` or `kind` for the transaction kind and either
    `category_name` or `category` for the category display name.

    Raises:
        ValueError: if a required field is missing or invalid
    """
    kind = _clean(record.get("type", record.get("kind")))
    raw_date = record.get("date")
    if kind is None or raw_date is None or pd.isna(raw_date) or record.get("amount") is None:
        raise ValueError(f"Incomplete transaction record: {record!r}")

    return Transaction(
        id=_clean(record.get("id")) or "",
        date=pd.Timestamp(raw_date).date(),
        amount=float(record["amount"]),
        kind=kind.lower(),
        description=_clean(record.get("description")) or "",
        category=_clean(record.get("category_name", record.get("category")))
    )


def parse_transactions(records: Iterable[Dict[str, Any]]) -> List[Transaction]:
    """Parse rows, logging and skipping the invalid ones."""
    transactions = []
    for record in records:
        try:
            transactions.append(parse_transaction(record))
        except (ValueError, TypeError) as e:
            logger.warning("Skipping invalid transaction row: %s", e)
    return transactions


class InMemoryTransactionRepository:
    """Fixture-backed repository keyed by user id."""

    def __init__(self, transactions_by_user: Optional[Dict[str, List[Transaction]]] = None):
        self.transactions_by_user = transactions_by_user or {}

    async def fetch_transactions(self, user_id: str, start_date: date) -> List[Transaction]:
        transactions = self.transactions_by_user.get(user_id, [])
        return chronological(tx for tx in transactions if tx.date >= start_date)


class CsvTransactionRepository:
    """
    Repository reading a CSV export with one row per transaction.

    Expected columns: id, user_id, date, amount, type, description,
    category_name and an optional status. Rows with a status other than
    "completed" are ignored.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load_frame(self) -> pd.DataFrame:
        frame = pd.read_csv(self.path, dtype={"id": str, "user_id": str})
        missing = {"user_id", "date", "amount", "type"} - set(frame.columns)
        if missing:
            raise ValueError(f"{self.path} is missing columns: {sorted(missing)}")

        frame["date"] = pd.to_datetime(frame["date"], errors="coerce").dt.date
        if "status" in frame.columns:
            status = frame["status"].fillna(COMPLETED_STATUS).astype(str).str.lower()
            frame = frame[status == COMPLETED_STATUS]
        return frame

    def load_user(self, user_id: str, start_date: date) -> List[Transaction]:
        frame = self.load_frame()
        frame = frame[(frame["user_id"] == str(user_id)) & frame["date"].notna()]
        frame = frame[frame["date"] >= start_date]
        logger.debug("Loaded %d row(s) for user %s from %s", len(frame), user_id, self.path)
        return chronological(parse_transactions(frame.to_dict("records")))

    async def fetch_transactions(self, user_id: str, start_date: date) -> List[Transaction]:
        return await asyncio.to_thread(self.load_user, user_id, start_date)

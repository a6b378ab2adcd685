"""
Transaction Query & Aggregation

DESIGN DECISION: Queries are DETERMINISTIC and run in Python over the
materialized list of a user's transactions. The document store only
orders by date; every filter below is applied here so all backends
behave identically.

Filters compose independently and are ANDed. Aggregation buckets by the
user-chosen transaction date, never by when the record was created.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pocket_ledger.models.account import as_utc
from pocket_ledger.models.transaction import (
    MonthlyTotals,
    Transaction,
    TransactionFilters,
    TransactionStats,
    TransactionType,
)
from pocket_ledger.services.storage import LedgerStorageInterface


def month_key(value: datetime) -> str:
    """Calendar month of a transaction date as YYYY-MM (UTC)."""
    return as_utc(value).strftime("%Y-%m")


def _matches_text(transaction: Transaction, needle: str) -> bool:
    if needle in transaction.description.lower():
        return True
    if transaction.notes and needle in transaction.notes.lower():
        return True
    return any(needle in tag.lower() for tag in transaction.tags)


def _matches(transaction: Transaction, filters: TransactionFilters) -> bool:
    if filters.start_date and as_utc(transaction.date) < as_utc(filters.start_date):
        return False
    if filters.end_date and as_utc(transaction.date) > as_utc(filters.end_date):
        return False
    if filters.type and transaction.type != filters.type:
        return False
    if filters.category and transaction.category != filters.category:
        return False
    if filters.account_id and filters.account_id not in (
        transaction.account_id,
        transaction.from_account_id,
        transaction.to_account_id,
    ):
        return False
    if filters.min_amount is not None and transaction.amount < filters.min_amount:
        return False
    if filters.max_amount is not None and transaction.amount > filters.max_amount:
        return False
    if filters.search_text and not _matches_text(transaction, filters.search_text.lower()):
        return False
    return True


def filter_transactions(
    transactions: Iterable[Transaction],
    filters: Optional[TransactionFilters] = None,
) -> list[Transaction]:
    """
    Apply filters, preserving input order.

    Returns a new list; with no filters every transaction is returned.
    """
    if filters is None:
        return list(transactions)
    return [t for t in transactions if _matches(t, filters)]


def aggregate(transactions: Iterable[Transaction]) -> TransactionStats:
    """
    Compute dashboard statistics.

    - total_income / total_expense: sums by type (transfers excluded)
    - net_income: income minus expense
    - category_totals: sum of amount per category, every type included
    - monthly_totals: income and expense per YYYY-MM of the transaction date
    """
    stats = TransactionStats()

    for transaction in transactions:
        if transaction.type == TransactionType.INCOME:
            stats.total_income += transaction.amount
        elif transaction.type == TransactionType.EXPENSE:
            stats.total_expense += transaction.amount

        stats.category_totals[transaction.category] = (
            stats.category_totals.get(transaction.category, Decimal("0"))
            + transaction.amount
        )

        month = stats.monthly_totals.setdefault(
            month_key(transaction.date), MonthlyTotals(),
        )
        if transaction.type == TransactionType.INCOME:
            month.income += transaction.amount
        elif transaction.type == TransactionType.EXPENSE:
            month.expense += transaction.amount

    stats.net_income = stats.total_income - stats.total_expense
    return stats


class QueryExecutor:
    """
    Executes transaction queries against ledger storage.

    GUARANTEES:
    - Only returns real data from storage
    - Results are fully materialized lists, newest first
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def list_transactions(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        transactions = await self._storage.list_transactions(user_id)
        return filter_transactions(transactions, filters)

    async def get_stats(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> TransactionStats:
        """Aggregate over all of the user's transactions, or a filtered subset."""
        transactions = await self.list_transactions(user_id, filters)
        return aggregate(transactions)

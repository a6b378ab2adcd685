"""Query execution package."""

from pocket_ledger.queries.executor import (
    QueryExecutor,
    aggregate,
    filter_transactions,
    month_key,
)

__all__ = ["QueryExecutor", "aggregate", "filter_transactions", "month_key"]

"""Ledger core: account balances and transaction posting."""

from pocket_ledger.ledger.account_ledger import AccountLedger, total_balance
from pocket_ledger.ledger.poster import TransactionPoster

__all__ = ["AccountLedger", "TransactionPoster", "total_balance"]

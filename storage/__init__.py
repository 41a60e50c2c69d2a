"""Storage package providing the transaction ledger backends."""

from pathlib import Path

from .ledger import InMemoryLedger, JsonFileLedger, Ledger, PersistenceError
from .models import LedgerEntry, TxStatus
from .sqlite_ledger import SQLiteLedger


def open_ledger(path: Path | str, backend: str = "json") -> Ledger:
    if backend == "sqlite":
        return SQLiteLedger(path)
    return JsonFileLedger(path)


__all__ = [
    "InMemoryLedger",
    "JsonFileLedger",
    "Ledger",
    "LedgerEntry",
    "PersistenceError",
    "SQLiteLedger",
    "TxStatus",
    "open_ledger",
]

"""SQLite-backed ledger, an embedded alternative to the JSON document."""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from storage.ledger import Ledger, PersistenceError
from storage.models import LedgerEntry, TxStatus

_COLUMNS = (
    "txhash",
    "timestamp",
    "pool_id",
    "token_in",
    "token_out",
    "amount",
    "swap_type",
    "min_price",
    "tx_status",
    "status_code",
    "raw_log",
    "gas_used",
    "tokens_in",
    "tokens_out",
)


class SQLiteLedger(Ledger):
    """Same records as the JSON ledger, one row per (account, txhash)."""

    def __init__(self, db_path: Path | str) -> None:
        super().__init__()
        self.db_path = Path(db_path)
        try:
            if self.db_path != Path(":memory:"):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._configure()
            self._create_schema()
        except (OSError, sqlite3.Error) as exc:
            raise PersistenceError(f"Failed to open ledger {self.db_path}: {exc}") from exc

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError:
                pass
            cursor.close()

    def _create_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS ledger_entry (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account TEXT NOT NULL,
                txhash TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                pool_id INTEGER NOT NULL,
                token_in TEXT NOT NULL,
                token_out TEXT NOT NULL,
                amount INTEGER NOT NULL,
                swap_type TEXT NOT NULL,
                min_price REAL NOT NULL,
                tx_status TEXT NOT NULL,
                status_code INTEGER,
                raw_log TEXT,
                gas_used INTEGER,
                tokens_in INTEGER,
                tokens_out INTEGER,
                UNIQUE (account, txhash)
            );
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_ledger_entry_account
                ON ledger_entry(account, id);
            """,
        ]
        with self._lock:
            cursor = self._connection.cursor()
            for statement in statements:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    def _append_entry_sync(self, account: str, entry: LedgerEntry) -> None:
        record = entry.to_dict()
        placeholders = ", ".join("?" for _ in range(len(_COLUMNS) + 1))
        try:
            cursor = self._connection.cursor()
            cursor.execute(
                f"INSERT INTO ledger_entry (account, {', '.join(_COLUMNS)}) VALUES ({placeholders})",
                (account, *(record[column] for column in _COLUMNS)),
            )
            self._connection.commit()
            cursor.close()
        except sqlite3.IntegrityError as exc:
            raise PersistenceError(f"Transaction {entry.txhash} already recorded for {account}") from exc
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to append {entry.txhash}: {exc}") from exc

    def _update_entry_sync(self, account: str, txhash: str, changes: dict[str, Any]) -> bool:
        assignments = ", ".join(f"{column} = ?" for column in changes)
        try:
            cursor = self._connection.cursor()
            cursor.execute(
                f"""
                UPDATE ledger_entry
                SET {assignments}
                WHERE account = ? AND txhash = ? AND tx_status = ?
                """,
                (*changes.values(), account, txhash, TxStatus.BROADCASTED.value),
            )
            updated = cursor.rowcount > 0
            self._connection.commit()
            cursor.close()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to update {txhash}: {exc}") from exc
        return updated

    def _rows_to_entries(self, rows: list[sqlite3.Row]) -> list[LedgerEntry]:
        return [LedgerEntry(**{column: row[column] for column in _COLUMNS}) for row in rows]

    def _list_entries_sync(self, account: str) -> list[LedgerEntry]:
        try:
            cursor = self._connection.cursor()
            cursor.execute("SELECT * FROM ledger_entry WHERE account = ? ORDER BY id", (account,))
            rows = cursor.fetchall()
            cursor.close()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list entries for {account}: {exc}") from exc
        return self._rows_to_entries(rows)

    def _load_all_sync(self) -> dict[str, list[LedgerEntry]]:
        try:
            cursor = self._connection.cursor()
            cursor.execute("SELECT * FROM ledger_entry ORDER BY id")
            rows = cursor.fetchall()
            cursor.close()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to load ledger: {exc}") from exc
        grouped: dict[str, list[LedgerEntry]] = {}
        for row in rows:
            grouped.setdefault(row["account"], []).extend(self._rows_to_entries([row]))
        return grouped

    async def close(self) -> None:
        await self._run(self._close_sync)

    def _close_sync(self) -> None:
        self._connection.commit()
        self._connection.close()

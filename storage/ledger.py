"""Durable record of broadcast transactions, keyed by account address."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from storage.models import LedgerEntry, TxStatus

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """The ledger could not be read or written."""


class Ledger(ABC):
    """
    Async-friendly ledger interface.

    Each public coroutine runs its synchronous counterpart in the default
    executor while holding the instance lock, so a single process never
    interleaves two read-modify-write cycles.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._locked, func, *args)

    def _locked(self, func, *args):
        with self._lock:
            return func(*args)

    async def append_entry(self, account: str, entry: LedgerEntry) -> None:
        await self._run(self._append_entry_sync, account, entry)

    async def update_entry(
        self,
        account: str,
        txhash: str,
        *,
        tx_status: TxStatus,
        status_code: Optional[int] = None,
        raw_log: Optional[str] = None,
        gas_used: Optional[int] = None,
        tokens_in: Optional[int] = None,
        tokens_out: Optional[int] = None,
    ) -> bool:
        """Moves a broadcasted entry to a terminal status; returns False when there is nothing to update."""
        changes = {
            "tx_status": TxStatus(tx_status).value,
            "status_code": status_code,
            "raw_log": raw_log,
            "gas_used": gas_used,
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
        }
        return await self._run(self._update_entry_sync, account, txhash, changes)

    async def list_entries(self, account: str) -> list[LedgerEntry]:
        return await self._run(self._list_entries_sync, account)

    async def load_all(self) -> dict[str, list[LedgerEntry]]:
        return await self._run(self._load_all_sync)

    async def close(self) -> None:
        return None

    @abstractmethod
    def _append_entry_sync(self, account: str, entry: LedgerEntry) -> None: ...

    @abstractmethod
    def _update_entry_sync(self, account: str, txhash: str, changes: dict[str, Any]) -> bool: ...

    @abstractmethod
    def _list_entries_sync(self, account: str) -> list[LedgerEntry]: ...

    @abstractmethod
    def _load_all_sync(self) -> dict[str, list[LedgerEntry]]: ...


def _apply_update(record: dict[str, Any], account: str, txhash: str, changes: dict[str, Any]) -> bool:
    current = record.get("tx_status", TxStatus.BROADCASTED.value)
    if current != TxStatus.BROADCASTED.value:
        logger.warning("Transaction %s of %s is already %s; update ignored.", txhash, account, current)
        return False
    record.update(changes)
    return True


class InMemoryLedger(Ledger):
    """Process-local ledger, mainly for tests and dry runs."""

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, list[dict[str, Any]]] = {}

    def _append_entry_sync(self, account: str, entry: LedgerEntry) -> None:
        records = self._records.setdefault(account, [])
        if any(record["txhash"] == entry.txhash for record in records):
            raise PersistenceError(f"Transaction {entry.txhash} already recorded for {account}")
        records.append(entry.to_dict())

    def _update_entry_sync(self, account: str, txhash: str, changes: dict[str, Any]) -> bool:
        for record in self._records.get(account, []):
            if record["txhash"] == txhash:
                return _apply_update(record, account, txhash, changes)
        logger.warning("Transaction %s not found for %s; nothing to update.", txhash, account)
        return False

    def _list_entries_sync(self, account: str) -> list[LedgerEntry]:
        return [LedgerEntry.from_dict(record) for record in self._records.get(account, [])]

    def _load_all_sync(self) -> dict[str, list[LedgerEntry]]:
        return {account: self._list_entries_sync(account) for account in self._records}


class JsonFileLedger(Ledger):
    """
    Stores the whole ledger as one JSON document ``{address: [entry, ...]}``.

    Every mutation reads, modifies and rewrites the full document. Only one
    writer per file is supported; concurrent processes can lose updates.
    """

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self.path = Path(path)

    def _read_document(self) -> dict[str, list[dict[str, Any]]]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise PersistenceError(f"Failed to read ledger {self.path}: {exc}") from exc
        if not content.strip():
            return {}
        try:
            document = json.loads(content)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Ledger {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise PersistenceError(f"Ledger {self.path} has an invalid structure")
        return document

    def _write_document(self, document: dict[str, list[dict[str, Any]]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"Failed to write ledger {self.path}: {exc}") from exc

    def _account_records(self, document: dict[str, Any], account: str, create: bool = False) -> list[dict[str, Any]]:
        records = document.setdefault(account, []) if create else document.get(account) or []
        if not isinstance(records, list):
            raise PersistenceError(f"Failed to get account transactions array for {account}")
        if not all(isinstance(record, dict) for record in records):
            raise PersistenceError(f"Ledger {self.path} holds a malformed transaction record for {account}")
        return records

    def _entries(self, document: dict[str, Any], account: str) -> list[LedgerEntry]:
        try:
            return [LedgerEntry.from_dict(record) for record in self._account_records(document, account)]
        except TypeError as exc:
            raise PersistenceError(f"Ledger {self.path} holds an incomplete record for {account}: {exc}") from exc

    def _append_entry_sync(self, account: str, entry: LedgerEntry) -> None:
        document = self._read_document()
        records = self._account_records(document, account, create=True)
        if any(record.get("txhash") == entry.txhash for record in records):
            raise PersistenceError(f"Transaction {entry.txhash} already recorded for {account}")
        records.append(entry.to_dict())
        self._write_document(document)

    def _update_entry_sync(self, account: str, txhash: str, changes: dict[str, Any]) -> bool:
        document = self._read_document()
        for record in self._account_records(document, account):
            if record.get("txhash") == txhash:
                if not _apply_update(record, account, txhash, changes):
                    return False
                self._write_document(document)
                return True
        logger.warning("Transaction %s not found for %s; nothing to update.", txhash, account)
        return False

    def _list_entries_sync(self, account: str) -> list[LedgerEntry]:
        document = self._read_document()
        return self._entries(document, account)

    def _load_all_sync(self) -> dict[str, list[LedgerEntry]]:
        document = self._read_document()
        return {account: self._entries(document, account) for account in document}

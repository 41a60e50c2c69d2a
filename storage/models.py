"""Dataclasses representing ledger records."""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Optional


class TxStatus(str, Enum):
    BROADCASTED = "broadcasted"
    EXECUTED = "executed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not TxStatus.BROADCASTED


TERMINAL_FIELDS = ("status_code", "raw_log", "gas_used", "tokens_in", "tokens_out")


@dataclass(slots=True)
class LedgerEntry:
    txhash: str
    timestamp: str
    pool_id: int
    token_in: str
    token_out: str
    amount: int
    swap_type: str
    min_price: float
    tx_status: str = TxStatus.BROADCASTED.value
    status_code: Optional[int] = None
    raw_log: Optional[str] = None
    gas_used: Optional[int] = None
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "LedgerEntry":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})

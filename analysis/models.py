#!/usr/bin/env python3
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from constants import COIN_DENOMS


class Coin(Enum):
    """Tokens the stream knows how to trade, valued by their display name."""
    WLibra = 'WLibra'
    USDC = 'USDC'
    OSMO = 'OSMO'
    TOSMO = 'TOSMO'  # test
    TUSDC = 'TUSDC'  # test

    @property
    def denom(self) -> str:
        return COIN_DENOMS[self.value]

    @classmethod
    def from_denom(cls, denom: str) -> Optional["Coin"]:
        for coin in cls:
            if coin.denom == denom:
                return coin
        return None

    def __str__(self) -> str:
        return self.value


class SwapType(str, Enum):
    AMOUNT_IN = 'amount_in'
    AMOUNT_OUT = 'amount_out'


@dataclass(frozen=True)
class TradeTask:
    """A single swap to attempt; `amount` is in micro-units."""
    pool_id: int
    token_in: Coin
    token_out: Coin
    amount: int
    swap_type: SwapType
    min_price: float


@dataclass(frozen=True)
class GateDecision:
    """Outcome of the pre-trade price and balance checks."""
    approved: bool
    trade_amount: int
    price: float
    reason: Optional[str] = None


@dataclass(frozen=True)
class BroadcastResult:
    txhash: str
    status_code: Optional[int] = None
    raw_log: Optional[str] = None


@dataclass(frozen=True)
class TxDetails:
    """Execution details of a transaction; all None while it is not yet indexed."""
    status_code: Optional[int] = None
    raw_log: Optional[str] = None
    gas_used: Optional[int] = None
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None

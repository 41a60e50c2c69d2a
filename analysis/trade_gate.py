"""Pre-trade checks deciding whether a swap may be submitted."""
from __future__ import annotations

from typing import Mapping

from analysis.models import Coin, GateDecision, SwapType, TradeTask

PRICE_BELOW_MIN = "price_below_min"
INSUFFICIENT_BALANCE = "insufficient_balance"
INSUFFICIENT_GAS = "insufficient_gas"


def compute_trade_amount(amount: int, price: float, swap_type: SwapType) -> int:
    if swap_type == SwapType.AMOUNT_OUT:
        return int(amount / price)
    if swap_type == SwapType.AMOUNT_IN:
        return int(amount * price)
    raise ValueError(f"Invalid swap type: {swap_type}")


class TradeGate:
    """Pure go/no-go evaluation; safe to call any number of times."""

    def __init__(self, gas_token: Coin, gas_reserve: int) -> None:
        self.gas_token = gas_token
        self.gas_reserve = gas_reserve

    def evaluate(self, price: float, balances: Mapping[Coin, int], task: TradeTask) -> GateDecision:
        if price <= 0 or price < task.min_price:
            return GateDecision(approved=False, trade_amount=0, price=price, reason=PRICE_BELOW_MIN)

        trade_amount = compute_trade_amount(task.amount, price, task.swap_type)

        if balances.get(task.token_in, 0) < trade_amount:
            return GateDecision(approved=False, trade_amount=trade_amount, price=price, reason=INSUFFICIENT_BALANCE)

        if balances.get(self.gas_token, 0) < self.gas_reserve:
            return GateDecision(approved=False, trade_amount=trade_amount, price=price, reason=INSUFFICIENT_GAS)

        return GateDecision(approved=True, trade_amount=trade_amount, price=price)

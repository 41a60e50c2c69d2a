"""Per-pool statistics reduced from the transaction ledger."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from analysis.models import Coin
from constants import MICRO_UNITS
from storage.ledger import Ledger
from storage.models import LedgerEntry, TxStatus


def format_token_amount(micro_amount: int, symbol: str) -> str:
    """Renders a micro-unit amount as e.g. ``USDC 1,234.567890``."""
    sign = "-" if micro_amount < 0 else ""
    whole, fraction = divmod(abs(int(micro_amount)), MICRO_UNITS)
    return f"{symbol} {sign}{whole:,}.{fraction:06d}"


@dataclass
class PoolSummary:
    pool_id: int
    token_in: str
    token_out: str
    tx_total_count: int = 0
    tx_success_count: int = 0
    tx_failed_count: int = 0
    tx_timeout_count: int = 0
    tx_pending_count: int = 0
    swap_amount_in_count: int = 0
    swap_amount_out_count: int = 0
    total_tokens_in: int = 0
    total_tokens_out: int = 0
    total_gas_used: int = 0

    def record(self, entry: LedgerEntry) -> None:
        self.tx_total_count += 1
        if entry.swap_type == "amount_in":
            self.swap_amount_in_count += 1
        elif entry.swap_type == "amount_out":
            self.swap_amount_out_count += 1

        if entry.status_code == 0:
            self.tx_success_count += 1
            self.total_tokens_in += entry.tokens_in or 0
            self.total_tokens_out += entry.tokens_out or 0
            self.total_gas_used += entry.gas_used or 0
            return

        self.tx_failed_count += 1
        if entry.tx_status == TxStatus.TIMEOUT.value:
            self.tx_timeout_count += 1
        elif entry.tx_status == TxStatus.BROADCASTED.value:
            self.tx_pending_count += 1

    @property
    def average_price(self) -> float:
        if not self.total_tokens_out:
            return 0.0
        return self.total_tokens_in / self.total_tokens_out


def summary_key(entry: LedgerEntry) -> str:
    return f"{entry.pool_id}-{entry.token_in}-{entry.token_out}"


class SummaryAggregator:
    """Read-only reducer over every account in the ledger."""

    def __init__(self, ledger: Ledger, gas_coin: Coin):
        self.ledger = ledger
        self.gas_coin = gas_coin

    async def summarize(self) -> Dict[str, Dict[str, PoolSummary]]:
        document = await self.ledger.load_all()
        result: Dict[str, Dict[str, PoolSummary]] = {}
        for account, entries in document.items():
            pools: Dict[str, PoolSummary] = {}
            for entry in entries:
                key = summary_key(entry)
                if key not in pools:
                    pools[key] = PoolSummary(pool_id=entry.pool_id, token_in=entry.token_in, token_out=entry.token_out)
                pools[key].record(entry)
            result[account] = pools
        return result

    def render(self, summary: Dict[str, Dict[str, PoolSummary]]) -> Dict[str, Dict[str, Dict[str, Any]]]:
        rendered: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for account, pools in summary.items():
            rendered[account] = {key: self._render_pool(pool) for key, pool in pools.items()}
        return rendered

    def _render_pool(self, pool: PoolSummary) -> Dict[str, Any]:
        return {
            "pool_id": pool.pool_id,
            "token_in": pool.token_in,
            "token_out": pool.token_out,
            "tx_total_count": pool.tx_total_count,
            "tx_success_count": pool.tx_success_count,
            "tx_failed_count": pool.tx_failed_count,
            "tx_timeout_count": pool.tx_timeout_count,
            "tx_pending_count": pool.tx_pending_count,
            "swap_amount_in_count": pool.swap_amount_in_count,
            "swap_amount_out_count": pool.swap_amount_out_count,
            "total_tokens_in": format_token_amount(pool.total_tokens_in, pool.token_in),
            "total_tokens_out": format_token_amount(pool.total_tokens_out, pool.token_out),
            "average_price": format_token_amount(round(pool.average_price * MICRO_UNITS), pool.token_out),
            "total_gas_used": format_token_amount(pool.total_gas_used, str(self.gas_coin)),
        }

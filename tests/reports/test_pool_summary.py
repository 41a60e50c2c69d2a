import pytest

from analysis.models import Coin
from reports.pool_summary import PoolSummary, SummaryAggregator, format_token_amount
from storage import InMemoryLedger, LedgerEntry, TxStatus


def _entry(txhash, swap_type="amount_out", pool_id=1721, token_in="WLibra", token_out="USDC"):
    return LedgerEntry(
        txhash=txhash,
        timestamp="1700000000",
        pool_id=pool_id,
        token_in=token_in,
        token_out=token_out,
        amount=1_000_000,
        swap_type=swap_type,
        min_price=0.5,
    )


@pytest.mark.parametrize(
    "micro, expected",
    [
        (0, "USDC 0.000000"),
        (1, "USDC 0.000001"),
        (1_234_567_890, "USDC 1,234.567890"),
        (-2_500_000, "USDC -2.500000"),
    ],
)
def test_format_token_amount(micro, expected):
    assert format_token_amount(micro, "USDC") == expected


def test_average_price_without_successes_is_zero():
    assert PoolSummary(pool_id=1, token_in="A", token_out="B").average_price == 0.0


async def _seeded_ledger():
    ledger = InMemoryLedger()
    account = "osmo1trader"
    for txhash in ("OK1", "OK2", "FAIL", "TIMEOUT", "PENDING"):
        await ledger.append_entry(account, _entry(txhash, swap_type="amount_in" if txhash == "OK2" else "amount_out"))
    await ledger.update_entry(account, "OK1", tx_status=TxStatus.EXECUTED, status_code=0,
                              gas_used=200_000, tokens_in=2_000_000, tokens_out=1_000_000)
    await ledger.update_entry(account, "OK2", tx_status=TxStatus.EXECUTED, status_code=0,
                              gas_used=100_000, tokens_in=1_000_000, tokens_out=500_000)
    await ledger.update_entry(account, "FAIL", tx_status=TxStatus.EXECUTED, status_code=7, gas_used=90_000)
    await ledger.update_entry(account, "TIMEOUT", tx_status=TxStatus.TIMEOUT)
    await ledger.append_entry("osmo1other", _entry("TEST", pool_id=15, token_in="TOSMO", token_out="TUSDC"))
    return ledger


@pytest.mark.asyncio
async def test_summary_counts_and_totals():
    aggregator = SummaryAggregator(await _seeded_ledger(), Coin.OSMO)

    summary = await aggregator.summarize()

    pool = summary["osmo1trader"]["1721-WLibra-USDC"]
    assert pool.tx_total_count == 5
    assert pool.tx_success_count == 2
    assert pool.tx_failed_count == 3
    assert pool.tx_success_count + pool.tx_failed_count == pool.tx_total_count
    assert pool.tx_timeout_count == 1
    assert pool.tx_pending_count == 1
    assert pool.swap_amount_in_count == 1
    assert pool.swap_amount_out_count == 4
    assert pool.total_tokens_in == 3_000_000
    assert pool.total_tokens_out == 1_500_000
    # Failed transactions contribute nothing to the totals.
    assert pool.total_gas_used == 300_000
    assert pool.average_price == pytest.approx(2.0)

    other = summary["osmo1other"]["15-TOSMO-TUSDC"]
    assert other.tx_total_count == 1
    assert other.tx_pending_count == 1


@pytest.mark.asyncio
async def test_render_formats_monetary_fields():
    aggregator = SummaryAggregator(await _seeded_ledger(), Coin.OSMO)

    rendered = aggregator.render(await aggregator.summarize())

    pool = rendered["osmo1trader"]["1721-WLibra-USDC"]
    assert pool["total_tokens_in"] == "WLibra 3.000000"
    assert pool["total_tokens_out"] == "USDC 1.500000"
    assert pool["average_price"] == "USDC 2.000000"
    assert pool["total_gas_used"] == "OSMO 0.300000"
    assert pool["tx_total_count"] == 5


@pytest.mark.asyncio
async def test_summary_does_not_modify_ledger():
    ledger = await _seeded_ledger()
    before = await ledger.load_all()

    await SummaryAggregator(ledger, Coin.OSMO).summarize()

    assert await ledger.load_all() == before

import pytest

from analysis.models import BroadcastResult, Coin, SwapType, TradeTask
from services.chain_client import ChainClientError
from services.osmosis_messages import SWAP_EXACT_AMOUNT_OUT_TYPE_URL, MsgSwapExactAmountOut
from services.swap_executor import SwapExecutor


class FakeSigner:
    address = "osmo1trader"

    def __init__(self):
        self.signed = []

    def sign(self, tx_body, account_number, sequence):
        self.signed.append((tx_body, account_number, sequence))
        return b"signed-tx"


class FakeChainClient:
    def __init__(self, broadcast_error=None):
        self.broadcast_error = broadcast_error
        self.broadcasts = []

    async def fetch_block_height(self):
        return 5_000

    async def fetch_account_info(self, address):
        assert address == "osmo1trader"
        return 42, 7

    async def broadcast_tx(self, tx_bytes):
        self.broadcasts.append(tx_bytes)
        if self.broadcast_error:
            raise self.broadcast_error
        return BroadcastResult(txhash="HASH", status_code=0)


def _task():
    return TradeTask(
        pool_id=1721,
        token_in=Coin.WLibra,
        token_out=Coin.USDC,
        amount=1_000_000,
        swap_type=SwapType.AMOUNT_OUT,
        min_price=0.25,
    )


@pytest.mark.asyncio
async def test_submit_builds_signs_and_broadcasts():
    chain_client = FakeChainClient()
    signer = FakeSigner()
    executor = SwapExecutor(chain_client, signer)

    result = await executor.submit(_task())

    assert result.txhash == "HASH"
    tx_body, account_number, sequence = signer.signed[0]
    assert (account_number, sequence) == (42, 7)
    assert tx_body.memo == "Trade Stream"
    assert tx_body.timeout_height == 6_000
    assert len(tx_body.messages) == 1
    assert tx_body.messages[0].type_url == SWAP_EXACT_AMOUNT_OUT_TYPE_URL
    message = MsgSwapExactAmountOut()
    assert tx_body.messages[0].Unpack(message)
    assert message.sender == "osmo1trader"
    assert chain_client.broadcasts == [b"signed-tx"]


@pytest.mark.asyncio
async def test_broadcast_error_propagates():
    executor = SwapExecutor(FakeChainClient(broadcast_error=ChainClientError("refused")), FakeSigner())

    with pytest.raises(ChainClientError):
        await executor.submit(_task())

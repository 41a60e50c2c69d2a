"""Builds, signs and broadcasts the swap for an approved trade task."""
from __future__ import annotations

import logging

from cosmpy.protos.cosmos.tx.v1beta1.tx_pb2 import TxBody

from analysis.models import BroadcastResult, TradeTask
from constants import TIMEOUT_HEIGHT_OFFSET, TX_MEMO
from services.chain_client import OsmosisChainClient
from services.osmosis_messages import build_swap_message
from services.signer import Signer


class SwapExecutor:
    """Submission boundary: either a broadcast result comes back or an error is raised, nothing is persisted here."""

    def __init__(self, chain_client: OsmosisChainClient, signer: Signer, memo: str = TX_MEMO) -> None:
        self.chain_client = chain_client
        self.signer = signer
        self.memo = memo
        self.logger = logging.getLogger(__name__)

    async def submit(self, task: TradeTask) -> BroadcastResult:
        sender = self.signer.address
        message = build_swap_message(sender, task)

        current_height = await self.chain_client.fetch_block_height()
        tx_body = TxBody(
            messages=[message],
            memo=self.memo,
            timeout_height=current_height + TIMEOUT_HEIGHT_OFFSET,
        )

        account_number, sequence = await self.chain_client.fetch_account_info(sender)
        tx_bytes = self.signer.sign(tx_body, account_number, sequence)

        self.logger.info(
            "[Swap] pool %s | %s %s -> %s | amount=%s min_price=%s | seq=%s",
            task.pool_id,
            task.swap_type.value,
            task.token_in,
            task.token_out,
            task.amount,
            task.min_price,
            sequence,
        )
        return await self.chain_client.broadcast_tx(tx_bytes)

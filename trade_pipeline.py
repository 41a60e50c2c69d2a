#!/usr/bin/env python3
"""One trade attempt: gate, submit, record, poll."""
import logging
import time
from typing import Callable, Optional

from analysis.models import BroadcastResult, TradeTask, TxDetails
from analysis.trade_gate import INSUFFICIENT_BALANCE, INSUFFICIENT_GAS, PRICE_BELOW_MIN, TradeGate
from services.chain_client import ChainClientError, OsmosisChainClient
from services.signer import SigningError
from services.status_poller import PollOutcome, PollStatus, StatusPoller
from services.swap_executor import SwapExecutor
from services.telegram_notifier import TelegramNotifier
from storage.ledger import Ledger, PersistenceError
from storage.models import LedgerEntry

logger = logging.getLogger(__name__)


class TradePipeline:
    """
    Runs a single execution attempt for a trade task.

    `execute` returns True once a transaction has been broadcast, whatever its
    final outcome, so the scheduler never submits twice in the same window.
    It returns False when the attempt stopped before broadcasting (gate
    rejection, network or signing failure).
    """

    def __init__(
        self,
        *,
        chain_client: OsmosisChainClient,
        gate: TradeGate,
        executor: SwapExecutor,
        ledger: Ledger,
        poller: StatusPoller,
        account: str,
        notifier: Optional[TelegramNotifier] = None,
        now: Callable[[], float] = time.time,
    ) -> None:
        self.chain_client = chain_client
        self.gate = gate
        self.executor = executor
        self.ledger = ledger
        self.poller = poller
        self.account = account
        self.notifier = notifier
        self._now = now

    async def execute(self, task: TradeTask) -> bool:
        # 1. Check coin price
        try:
            price = await self.chain_client.fetch_price(task.pool_id)
        except ChainClientError as exc:
            logger.error("!!! 1. Error fetching coin price: %s", exc)
            return False

        # 2. Check account balances
        try:
            balances = await self.chain_client.fetch_balances(
                self.account, coins=[task.token_in, self.gate.gas_token]
            )
        except ChainClientError as exc:
            logger.error("!!! 2. Error fetching account balance: %s", exc)
            return False

        decision = self.gate.evaluate(price, balances, task)
        if not decision.approved:
            self._log_rejection(task, decision.reason, price, decision.trade_amount)
            return False
        logger.info(">>> Current price %s is above min price %s; trade amount %s", price, task.min_price, decision.trade_amount)

        # 3. Perform swap
        try:
            result = await self.executor.submit(task)
        except (ChainClientError, SigningError) as exc:
            logger.error("!!! 3. Error performing swap: %s", exc)
            return False

        # The swap is on chain now; nothing below may undo the window's execution.
        try:
            await self._follow_up(task, result)
        except Exception:
            logger.exception("Unexpected error after broadcasting %s", result.txhash)
        return True

    async def _follow_up(self, task: TradeTask, result: BroadcastResult) -> None:
        await self._record_broadcast(task, result.txhash)

        if result.status_code not in (None, 0):
            logger.error("Broadcast failed with code: %s (%s)", result.status_code, result.raw_log)
            outcome = await self.poller.settle(
                self.account,
                result.txhash,
                TxDetails(status_code=result.status_code, raw_log=result.raw_log),
            )
        else:
            outcome = await self.poller.start(self.account, result.txhash)

        self._log_outcome(result.txhash, outcome)
        if self.notifier:
            details = outcome.details or TxDetails()
            await self.notifier.notify_trade(
                task,
                result.txhash,
                outcome.status.value,
                outcome.status_code,
                tokens_in=details.tokens_in,
                tokens_out=details.tokens_out,
            )

    async def _record_broadcast(self, task: TradeTask, txhash: str) -> None:
        entry = LedgerEntry(
            txhash=txhash,
            timestamp=str(int(self._now())),
            pool_id=task.pool_id,
            token_in=str(task.token_in),
            token_out=str(task.token_out),
            amount=task.amount,
            swap_type=task.swap_type.value,
            min_price=task.min_price,
        )
        try:
            await self.ledger.append_entry(self.account, entry)
        except PersistenceError as exc:
            logger.error("Failed to store broadcasted transaction %s: %s", txhash, exc)

    @staticmethod
    def _log_rejection(task: TradeTask, reason: Optional[str], price: float, trade_amount: int) -> None:
        if reason == PRICE_BELOW_MIN:
            logger.info("!!! Current price %s is less than min price %s to perform swap", price, task.min_price)
        elif reason == INSUFFICIENT_BALANCE:
            logger.warning("!!! Insufficient %s balance to perform swap (needs %s)", task.token_in, trade_amount)
        elif reason == INSUFFICIENT_GAS:
            logger.warning("!!! Insufficient gas token balance to pay for fees")
        else:
            logger.warning("!!! Trade rejected: %s", reason)

    @staticmethod
    def _log_outcome(txhash: str, outcome: PollOutcome) -> None:
        if outcome.succeeded:
            logger.info("Transaction %s executed successfully", txhash)
        elif outcome.status is PollStatus.EXECUTED:
            logger.error("Transaction %s failed with code: %s", txhash, outcome.status_code)
        elif outcome.status is PollStatus.TIMEOUT:
            logger.error("Transaction %s status unknown (polling timed out)", txhash)
        else:
            logger.error("Error polling transaction status for %s", txhash)

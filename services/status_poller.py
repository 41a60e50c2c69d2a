"""Drives a broadcast transaction to a terminal status."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from analysis.models import TxDetails
from constants import POLL_INTERVAL_SECONDS, POLL_TIMEOUT_SECONDS
from services.chain_client import ChainClientError, OsmosisChainClient
from storage.ledger import Ledger, PersistenceError
from storage.models import TxStatus

logger = logging.getLogger(__name__)


class PollStatus(str, Enum):
    EXECUTED = "executed"
    TIMEOUT = "timeout"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PollOutcome:
    status: PollStatus
    details: Optional[TxDetails] = None

    @property
    def status_code(self) -> Optional[int]:
        return self.details.status_code if self.details else None

    @property
    def succeeded(self) -> bool:
        return self.status is PollStatus.EXECUTED and self.status_code == 0


class StatusPoller:
    """
    Broadcasted -> Executed(code) | TimedOut.

    A failed detail fetch aborts polling without touching the ledger, which
    leaves the entry in ``broadcasted``.
    """

    def __init__(
        self,
        chain_client: OsmosisChainClient,
        ledger: Ledger,
        *,
        timeout: float = POLL_TIMEOUT_SECONDS,
        interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.chain_client = chain_client
        self.ledger = ledger
        self.timeout = timeout
        self.interval = interval
        self._clock = clock
        self._sleep = sleep

    async def poll(self, account: str, txhash: str) -> PollOutcome:
        started = self._clock()
        while True:
            if self._clock() - started >= self.timeout:
                await self._persist(account, txhash, TxStatus.TIMEOUT, TxDetails())
                logger.warning("!!! Transaction polling timed out for txhash: %s", txhash)
                return PollOutcome(status=PollStatus.TIMEOUT)

            try:
                details = await self.chain_client.fetch_tx_details(txhash, account)
            except ChainClientError as exc:
                logger.error("!!! Error fetching transaction details for %s: %s", txhash, exc)
                return PollOutcome(status=PollStatus.ABORTED)

            if details.status_code is not None:
                await self._persist(account, txhash, TxStatus.EXECUTED, details)
                return PollOutcome(status=PollStatus.EXECUTED, details=details)

            logger.info("... Transaction %s not yet confirmed", txhash)
            await self._sleep(self.interval)

    async def settle(self, account: str, txhash: str, details: TxDetails) -> PollOutcome:
        """Records a status the chain already returned at broadcast time."""
        await self._persist(account, txhash, TxStatus.EXECUTED, details)
        return PollOutcome(status=PollStatus.EXECUTED, details=details)

    async def _persist(self, account: str, txhash: str, status: TxStatus, details: TxDetails) -> None:
        try:
            await self.ledger.update_entry(
                account,
                txhash,
                tx_status=status,
                status_code=details.status_code,
                raw_log=details.raw_log,
                gas_used=details.gas_used,
                tokens_in=details.tokens_in,
                tokens_out=details.tokens_out,
            )
        except PersistenceError as exc:
            logger.error("Failed to persist %s status for %s: %s", status.value, txhash, exc)

    def start(self, account: str, txhash: str) -> "asyncio.Task[PollOutcome]":
        """Runs the poll as its own task; callers await the task to observe completion."""
        return asyncio.create_task(self.poll(account, txhash), name=f"poll-{txhash[:12]}")

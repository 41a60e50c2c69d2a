#!/usr/bin/env python3
import asyncio
import base64
import logging
import re
from typing import Any, Dict, Iterable, Optional, Tuple

import aiohttp

from analysis.models import BroadcastResult, Coin, TxDetails
from config import ChainSettings
from constants import BALANCER_POOL_TYPE, CONCENTRATED_LIQUIDITY_POOL_TYPE

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"^\d+")


class ChainClientError(Exception):
    """Network level failure talking to the chain endpoints."""


async def api_get(url: str, session: aiohttp.ClientSession, retries: int = 3, timeout: int = 30) -> Dict:
    """Makes an async GET request with retries and timeout."""
    for attempt in range(retries):
        try:
            async with session.get(url, timeout=timeout) as response:
                response.raise_for_status()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            if attempt < retries - 1:
                await asyncio.sleep(2)
            else:
                raise ChainClientError(f"API request failed after {retries} attempts: {e}") from e
    raise ChainClientError(f"API request to {url} was not attempted")


def _parse_amount(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def leading_amount(value: Optional[str]) -> Optional[int]:
    """Extracts the amount from a coin string such as ``"500uosmo"``."""
    if not value:
        return None
    match = _LEADING_DIGITS.match(value)
    return int(match.group(0)) if match else None


def find_event_attribute(
    events: Iterable[Dict[str, Any]],
    event_type: str,
    key: str,
    *,
    sender: Optional[str] = None,
) -> Optional[str]:
    """Returns the first attribute `key` of an event of `event_type`, optionally emitted for `sender`."""
    for event in events:
        if event.get("type") != event_type:
            continue
        attributes = {attr.get("key"): attr.get("value") for attr in event.get("attributes") or []}
        if sender is not None and attributes.get("sender") != sender:
            continue
        if key in attributes:
            return attributes[key]
    return None


def parse_tx_details(payload: Dict[str, Any], account_address: str) -> TxDetails:
    tx_response = payload.get("tx_response") or {}
    status_code = _parse_amount(tx_response.get("code"))
    raw_log = tx_response.get("raw_log")
    gas_used = _parse_amount(tx_response.get("gas_used"))

    tokens_in = tokens_out = None
    if status_code == 0:
        events = tx_response.get("events") or []
        tokens_in = leading_amount(find_event_attribute(events, "token_swapped", "tokens_in", sender=account_address))
        tokens_out = leading_amount(find_event_attribute(events, "token_swapped", "tokens_out", sender=account_address))

    return TxDetails(
        status_code=status_code,
        raw_log=raw_log,
        gas_used=gas_used,
        tokens_in=tokens_in,
        tokens_out=tokens_out,
    )


def parse_pool_price(payload: Dict[str, Any]) -> float:
    """Spot price of the pool's second asset in terms of the first, net of fees."""
    pool = payload.get("pool") or {}
    pool_type = pool.get("@type")
    try:
        if pool_type == CONCENTRATED_LIQUIDITY_POOL_TYPE:
            sqrt_price = float(pool["current_sqrt_price"])
            price = sqrt_price * sqrt_price
            try:
                price *= 1.0 - float(pool["spread_factor"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Failed to parse spread factor; using price without discount.")
            return price

        if pool_type == BALANCER_POOL_TYPE:
            swap_fee = float(pool["pool_params"]["swap_fee"])
            asset_0, asset_1 = pool["pool_assets"][0], pool["pool_assets"][1]
            asset_0_amount = float(asset_0["token"]["amount"])
            asset_1_amount = float(asset_1["token"]["amount"])
            asset_0_weight = float(asset_0["weight"])
            asset_1_weight = float(asset_1["weight"])
            price = (asset_1_amount / asset_1_weight) / (asset_0_amount / asset_0_weight)
            return price * (1.0 - swap_fee)
    except (KeyError, IndexError, TypeError, ValueError, ZeroDivisionError) as exc:
        raise ChainClientError(f"Malformed pool payload: {exc}") from exc

    raise ChainClientError(f"Unknown pool type: {pool_type}")


class OsmosisChainClient:
    """Thin async wrapper around the Osmosis LCD and RPC endpoints."""

    def __init__(self, session: aiohttp.ClientSession, settings: ChainSettings, timeout: int = 30):
        self.session = session
        self.settings = settings
        self.timeout = timeout

    async def fetch_price(self, pool_id: int) -> float:
        url = self.settings.pool_price_url.replace("{}", str(pool_id))
        data = await api_get(url, self.session, timeout=self.timeout)
        return parse_pool_price(data)

    async def fetch_balances(self, address: str, coins: Optional[Iterable[Coin]] = None) -> Dict[Coin, int]:
        url = self.settings.account_balances_url.replace("{}", address)
        data = await api_get(url, self.session, timeout=self.timeout)
        wanted = list(coins) if coins is not None else None

        balances: Dict[Coin, int] = {}
        for balance in data.get("balances") or []:
            amount = _parse_amount(balance.get("amount"))
            if amount is None:
                raise ChainClientError(f"Malformed balance entry: {balance}")
            if wanted is not None:
                for coin in wanted:
                    if coin.denom == balance.get("denom"):
                        balances[coin] = amount
                continue
            coin = Coin.from_denom(balance.get("denom", ""))
            if coin is not None:
                balances[coin] = amount
        return balances

    async def fetch_account_info(self, address: str) -> Tuple[int, int]:
        url = self.settings.account_info_url.replace("{}", address)
        data = await api_get(url, self.session, timeout=self.timeout)
        try:
            account = data["account"]
            return int(account["account_number"]), int(account["sequence"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainClientError(f"Malformed account info for {address}: {exc}") from exc

    async def fetch_block_height(self) -> int:
        data = await api_get(self.settings.status_url, self.session, timeout=self.timeout)
        try:
            return int(data["result"]["sync_info"]["latest_block_height"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainClientError(f"Malformed status response: {exc}") from exc

    async def broadcast_tx(self, tx_bytes: bytes) -> BroadcastResult:
        """Submits a signed transaction once; broadcasts are never retried."""
        body = {
            "tx_bytes": base64.b64encode(tx_bytes).decode("ascii"),
            "mode": "BROADCAST_MODE_SYNC",
        }
        try:
            async with self.session.post(self.settings.broadcast_tx_url, json=body, timeout=self.timeout) as response:
                response.raise_for_status()
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ChainClientError(f"Broadcast failed: {exc}") from exc

        tx_response = data.get("tx_response") or {}
        txhash = tx_response.get("txhash")
        if not txhash:
            raise ChainClientError(f"Broadcast response carried no txhash: {data}")
        logger.info(">>> Transaction broadcasted: %s", txhash)
        return BroadcastResult(
            txhash=txhash,
            status_code=_parse_amount(tx_response.get("code")),
            raw_log=tx_response.get("raw_log"),
        )

    async def fetch_tx_details(self, txhash: str, account_address: str) -> TxDetails:
        """
        Fetches execution details of a transaction.

        The HTTP status is ignored on purpose: an unindexed transaction answers
        with an error body, which simply carries no status code yet.
        """
        url = self.settings.tx_details_url.replace("{}", txhash)
        try:
            async with self.session.get(url, timeout=self.timeout) as response:
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ChainClientError(f"Failed to fetch details for {txhash}: {exc}") from exc
        if not isinstance(data, dict):
            raise ChainClientError(f"Unexpected tx details payload for {txhash}")
        return parse_tx_details(data, account_address)

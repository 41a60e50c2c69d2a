#!/usr/bin/env python3
import asyncio
import json
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Sequence

import aiohttp

import constants
from analysis.models import Coin
from analysis.trade_gate import TradeGate
from config import AppConfig, ConfigurationError, load_config, prompt_mnemonic
from reports.pool_summary import SummaryAggregator, format_token_amount
from scheduler import WindowScheduler
from services.chain_client import ChainClientError, OsmosisChainClient
from services.signer import MnemonicSigner, SigningError, validate_mnemonic
from services.status_poller import StatusPoller
from services.swap_executor import SwapExecutor
from services.telegram_notifier import TelegramNotifier
from storage import Ledger, PersistenceError, open_ledger
from trade_pipeline import TradePipeline

logger = logging.getLogger(__name__)

_LEVEL_COLOURS = {
    logging.DEBUG: constants.C_BLUE,
    logging.WARNING: constants.C_YELLOW,
    logging.ERROR: constants.C_RED,
    logging.CRITICAL: constants.C_RED,
}


class ColourFormatter(logging.Formatter):
    """Console formatter using the same ANSI colours as the CLI output."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        colour = _LEVEL_COLOURS.get(record.levelno)
        return f"{colour}{message}{constants.C_RESET}" if colour else message


def configure_logging(log_file: Path, level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(ColourFormatter("%(asctime)s %(levelname)s %(message)s", "%H:%M:%S"))
    root.addHandler(console)

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=constants.LOG_FILE_MAX_BYTES,
        backupCount=constants.LOG_FILE_BACKUP_COUNT,
        encoding='utf-8',
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(file_handler)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop(sig: signal.Signals) -> None:
        logger.info("Received %s, stopping after the current tick", sig.name)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig)
        except (NotImplementedError, RuntimeError):
            pass


async def run_stream(config: AppConfig, signer: MnemonicSigner) -> None:
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    notifier: Optional[TelegramNotifier] = None
    ledger: Optional[Ledger] = None
    try:
        if config.telegram_enabled:
            notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
            await notifier.start()
        ledger = open_ledger(config.ledger_path, config.ledger_backend)
        async with aiohttp.ClientSession(headers={'User-Agent': 'TradeStream/1.0'}) as session:
            chain_client = OsmosisChainClient(session, config.chain)
            gate = TradeGate(Coin[config.gas.token], config.gas.reserve)
            poller = StatusPoller(chain_client, ledger)
            pipeline = TradePipeline(
                chain_client=chain_client,
                gate=gate,
                executor=SwapExecutor(chain_client, signer),
                ledger=ledger,
                poller=poller,
                account=signer.address,
                notifier=notifier,
            )
            scheduler = WindowScheduler(
                config.stream,
                config.pool_id,
                Coin[config.token_in],
                Coin[config.token_out],
                pipeline,
                notifier=notifier,
            )
            await scheduler.run(stop_event)
    finally:
        if ledger is not None:
            await ledger.close()
        if notifier:
            await notifier.close()


async def show_balances(config: AppConfig) -> List[str]:
    coins = []
    for name in (config.token_in, config.token_out, config.gas.token):
        coin = Coin[name]
        if coin not in coins:
            coins.append(coin)
    async with aiohttp.ClientSession() as session:
        client = OsmosisChainClient(session, config.chain)
        balances = await client.fetch_balances(config.address, coins=coins)
    return [format_token_amount(balances.get(coin, 0), str(coin)) for coin in coins]


async def build_summary(config: AppConfig) -> dict:
    ledger = open_ledger(config.ledger_path, config.ledger_backend)
    try:
        aggregator = SummaryAggregator(ledger, Coin[config.gas.token])
        return aggregator.render(await aggregator.summarize())
    finally:
        await ledger.close()


def _print_error(message: str) -> None:
    print(f"{constants.C_RED}{message}{constants.C_RESET}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """The main synchronous entry point for the application."""
    try:
        config = load_config(argv)
    except ConfigurationError as exc:
        _print_error(f"Configuration error: {exc}")
        return 1

    configure_logging(config.log_file)
    logger.info("Environment: %s, pool %s (%s -> %s)", config.environment, config.pool_id, config.token_in, config.token_out)

    if config.command == 'balance':
        try:
            lines = asyncio.run(show_balances(config))
        except ChainClientError as exc:
            _print_error(f"Error fetching balances: {exc}")
            return 1
        print(f"Balances for {config.address}:")
        for line in lines:
            print(f"  {line}")
        return 0

    if config.command == 'summary':
        try:
            rendered = asyncio.run(build_summary(config))
        except PersistenceError as exc:
            _print_error(f"Error reading transaction ledger: {exc}")
            return 1
        print(json.dumps(rendered, indent=2))
        return 0

    mnemonic = prompt_mnemonic(validate_mnemonic)
    if mnemonic is None:
        _print_error("No valid mnemonic supplied.")
        return 1
    try:
        signer = MnemonicSigner(
            mnemonic,
            chain_id=config.chain.chain_id,
            fee_denom=Coin[config.gas.token].denom,
            fee_amount=config.gas.fee_amount,
            gas_limit=config.gas.gas_limit,
        )
    except SigningError as exc:
        _print_error(str(exc))
        return 1
    print(f"Trading from address: {constants.C_GREEN}{signer.address}{constants.C_RESET}")

    try:
        asyncio.run(run_stream(config, signer))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except PersistenceError as exc:
        _print_error(f"Error opening transaction ledger: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

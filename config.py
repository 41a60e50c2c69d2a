#!/usr/bin/env python3
import argparse
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import Callable, NamedTuple, Optional, Sequence

from dotenv import load_dotenv

import constants

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised for invalid settings that must stop the process before streaming."""


class ChainSettings(NamedTuple):
    """Endpoints and chain id for the selected environment."""
    chain_id: str
    status_url: str
    account_info_url: str
    broadcast_tx_url: str
    pool_price_url: str
    account_balances_url: str
    tx_details_url: str


class GasSettings(NamedTuple):
    token: str
    fee_amount: int
    gas_limit: int
    reserve: int


class StreamSettings(NamedTuple):
    """Parameters of a trade stream, amounts in micro-units."""
    daily_amount: int
    swap_type: str
    streams_per_day: int
    min_price: float

    @property
    def amount_per_stream(self) -> int:
        return self.daily_amount // self.streams_per_day

    @property
    def window_seconds(self) -> float:
        return constants.SECONDS_PER_DAY / self.streams_per_day


class AppConfig(NamedTuple):
    """Typed configuration object."""
    command: str
    environment: str
    pool_id: int
    token_in: str
    token_out: str
    chain: ChainSettings
    gas: GasSettings
    stream: Optional[StreamSettings]
    address: Optional[str]
    ledger_path: Path
    ledger_backend: str
    log_file: Path
    telegram_enabled: bool
    telegram_bot_token: str | None
    telegram_chat_id: str | None


def get_environment() -> str:
    return os.environ.get(constants.ENVIRONMENT_ENV_VAR, constants.DEFAULT_ENVIRONMENT)


def load_environment() -> str:
    """Loads `.env` and then `.env.<environment>` from the working directory."""
    load_dotenv(Path.cwd() / ".env")
    environment = get_environment()
    load_dotenv(Path.cwd() / f".env.{environment}")
    return environment


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stream a daily swap volume on Osmosis across randomized time windows.",
        epilog="Example: ./main.py stream --daily-amount-out 100 --streams-per-day 24 --min-price 0.5",
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    stream = subparsers.add_parser('stream', help='Start the trade stream.')
    amount_group = stream.add_mutually_exclusive_group(required=True)
    amount_group.add_argument('--daily-amount-out', type=int, help='Daily amount of the output token to buy (whole tokens).')
    amount_group.add_argument('--daily-amount-in', type=int, help='Daily amount of the input token to sell (whole tokens).')
    stream.add_argument('--streams-per-day', type=int, required=True, help='Number of trade windows per day.')
    stream.add_argument('--min-price', type=float, required=True, help='Price floor below which no swap is attempted.')
    stream.add_argument('--telegram-enabled', action='store_true', help='Send trade outcomes to Telegram.')

    balance = subparsers.add_parser('balance', help='Show the balances of an address.')
    balance.add_argument('--address', required=True, help='Account address to query.')

    subparsers.add_parser('summary', help='Summarize the transaction ledger per pool.')
    return parser


def parse_swap_type(value: str) -> str:
    if value not in ('amount_in', 'amount_out'):
        raise ConfigurationError(f"Invalid swap type: {value}")
    return value


def validate_stream_settings(
    daily_amount: int,
    swap_type: str,
    streams_per_day: int,
    min_price: float,
) -> StreamSettings:
    """Rejects stream parameters the scheduler cannot work with."""
    swap_type = parse_swap_type(swap_type)
    if streams_per_day <= 0:
        raise ConfigurationError("--streams-per-day must be a positive integer.")
    if daily_amount <= 0:
        raise ConfigurationError("The daily amount must be positive.")
    if min_price <= 0:
        raise ConfigurationError("--min-price must be positive.")
    daily_micro = daily_amount * constants.MICRO_UNITS
    if daily_micro // streams_per_day == 0:
        raise ConfigurationError("The daily amount is too small for the requested number of streams.")
    return StreamSettings(
        daily_amount=daily_micro,
        swap_type=swap_type,
        streams_per_day=streams_per_day,
        min_price=min_price,
    )


def _setting_from_env(name: str) -> Optional[str]:
    """Reads an APP_* variable, falling back to its APP__* spelling."""
    value = os.environ.get(name)
    if value:
        return value
    if name.startswith(constants.SETTINGS_OVERRIDE_PREFIX):
        suffix = name[len(constants.SETTINGS_OVERRIDE_PREFIX):]
        return os.environ.get(constants.NESTED_SETTINGS_OVERRIDE_PREFIX + suffix) or None
    return value


def _chain_settings(preset: dict) -> ChainSettings:
    values = {}
    for key in constants.CHAIN_SETTING_KEYS:
        override = _setting_from_env(constants.SETTINGS_OVERRIDE_PREFIX + key.upper())
        values[key] = override or str(preset[key])
    return ChainSettings(
        chain_id=values['osmosis_chain_id'],
        status_url=values['osmosis_status_url'],
        account_info_url=values['osmosis_account_info_url'],
        broadcast_tx_url=values['osmosis_broadcast_tx_url'],
        pool_price_url=values['osmosis_pool_price_url'],
        account_balances_url=values['osmosis_account_balances_url'],
        tx_details_url=values['osmosis_tx_details_url'],
    )


def _int_from_env(name: str, default: int) -> int:
    raw = _setting_from_env(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}.") from exc


def user_config_dir() -> Path:
    """Per-user settings root: %APPDATA% on Windows, ~/Library/Application Support on macOS, $XDG_CONFIG_HOME elsewhere."""
    if sys.platform == 'win32':
        base = Path(os.environ.get('APPDATA') or Path.home() / 'AppData' / 'Roaming')
    elif sys.platform == 'darwin':
        base = Path.home() / 'Library' / 'Application Support'
    else:
        base = Path(os.environ.get('XDG_CONFIG_HOME') or Path.home() / '.config')
    return base / constants.USER_CONFIG_DIR_NAME


def _default_ledger_path(environment: str, backend: str) -> Path:
    file_name = constants.SQLITE_LEDGER_FILE_NAME if backend == 'sqlite' else constants.LEDGER_FILE_NAME
    return user_config_dir() / environment / file_name


def load_config(argv: Optional[Sequence[str]] = None) -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.

    Raises ConfigurationError for anything that would make the stream unsafe to start.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    environment = load_environment()
    preset = constants.ENVIRONMENT_PRESETS.get(environment)
    if preset is None:
        raise ConfigurationError(
            f"Unknown environment {environment!r}; expected one of {sorted(constants.ENVIRONMENT_PRESETS)}."
        )

    stream = None
    if args.command == 'stream':
        if args.daily_amount_out is not None:
            daily_amount, swap_type = args.daily_amount_out, 'amount_out'
        else:
            daily_amount, swap_type = args.daily_amount_in, 'amount_in'
        stream = validate_stream_settings(daily_amount, swap_type, args.streams_per_day, args.min_price)

    telegram_enabled = bool(getattr(args, 'telegram_enabled', False))
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)
    if telegram_enabled and not (telegram_bot_token and telegram_chat_id):
        raise ConfigurationError(
            f"Telegram is enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} or "
            f"{constants.TELEGRAM_CHAT_ID_ENV_VAR} are not set."
        )

    ledger_backend = (_setting_from_env(constants.LEDGER_BACKEND_ENV_VAR) or 'json').lower()
    if ledger_backend not in ('json', 'sqlite'):
        raise ConfigurationError(f"Unsupported ledger backend: {ledger_backend}")
    ledger_path_env = _setting_from_env(constants.LEDGER_PATH_ENV_VAR)
    ledger_path = Path(ledger_path_env) if ledger_path_env else _default_ledger_path(environment, ledger_backend)

    gas = GasSettings(
        token=str(preset['gas_token']),
        fee_amount=constants.GAS_FEE_AMOUNT,
        gas_limit=constants.GAS_LIMIT,
        reserve=_int_from_env(constants.GAS_RESERVE_ENV_VAR, constants.GAS_FEE_AMOUNT),
    )

    return AppConfig(
        command=args.command,
        environment=environment,
        pool_id=int(preset['pool_id']),
        token_in=str(preset['token_in']),
        token_out=str(preset['token_out']),
        chain=_chain_settings(preset),
        gas=gas,
        stream=stream,
        address=getattr(args, 'address', None),
        ledger_path=ledger_path,
        ledger_backend=ledger_backend,
        log_file=Path(_setting_from_env(constants.LOG_FILE_ENV_VAR) or constants.LOG_FILE_NAME),
        telegram_enabled=telegram_enabled,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
    )


def prompt_mnemonic(
    validate: Callable[[str], bool],
    *,
    max_attempts: int = constants.MAX_PROMPT_ATTEMPTS,
    read: Callable[[str], str] = getpass.getpass,
) -> Optional[str]:
    """
    Returns the operator mnemonic, from $TSMNEM when set, otherwise from a hidden prompt.

    Invalid phrases are re-prompted at most `max_attempts` times; None means the
    operator never supplied a usable phrase.
    """
    from_env = os.environ.get(constants.MNEMONIC_ENV_VAR)
    if from_env:
        logger.info("Debugging mode, using mnemonic from env variable, $%s", constants.MNEMONIC_ENV_VAR)
        phrase = from_env.strip()
        return phrase if validate(phrase) else None

    for attempt in range(1, max_attempts + 1):
        try:
            phrase = read("Enter your Osmosis mnemonic: ").strip()
        except (EOFError, KeyboardInterrupt):
            return None
        if validate(phrase):
            return phrase
        print(f"{constants.C_RED}Invalid mnemonic ({attempt}/{max_attempts}).{constants.C_RESET}")
    return None

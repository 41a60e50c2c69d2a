#!/usr/bin/env python3
from typing import Dict, Union

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- Environment Variable Names ---
ENVIRONMENT_ENV_VAR = 'ENVIRONMENT'
MNEMONIC_ENV_VAR = 'TSMNEM'
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'
LEDGER_PATH_ENV_VAR = 'APP_LEDGER_PATH'
LEDGER_BACKEND_ENV_VAR = 'APP_LEDGER_BACKEND'
GAS_RESERVE_ENV_VAR = 'APP_GAS_RESERVE'
LOG_FILE_ENV_VAR = 'APP_LOG_FILE'

# Prefix for overriding any chain setting, e.g. APP_OSMOSIS_BROADCAST_TX_URL.
# The double-underscore form (APP__OSMOSIS_BROADCAST_TX_URL) is accepted too;
# the single-underscore name wins when both are set.
SETTINGS_OVERRIDE_PREFIX = 'APP_'
NESTED_SETTINGS_OVERRIDE_PREFIX = 'APP__'

DEFAULT_ENVIRONMENT = 'prod'

# --- Coins ---
COIN_DENOMS: Dict[str, str] = {
    'WLibra': 'factory/osmo19hdqma2mj0vnmgcxag6ytswjnr8a3y07q7e70p/wLIBRA',
    'USDC': 'ibc/498A0751C798A0D9A389AA3691123DADA57DAA4FE165D5C75894505B876BA6E4',
    'OSMO': 'uosmo',
    'TOSMO': 'uosmo',
    'TUSDC': 'factory/osmo109ns4u04l44kqdkvp876hukd3hxz8zzm7809el/uusdc',
}

# On-chain amounts carry 6 implied decimals.
MICRO_UNITS = 1_000_000

# --- Environment Presets ---
ENVIRONMENT_PRESETS: Dict[str, Dict[str, Union[str, int]]] = {
    'prod': {
        'pool_id': 1721,
        'token_in': 'WLibra',
        'token_out': 'USDC',
        'gas_token': 'OSMO',
        'osmosis_chain_id': 'osmosis-1',
        'osmosis_status_url': 'https://rpc.osmosis.zone/status',
        'osmosis_account_info_url': 'https://lcd.osmosis.zone/cosmos/auth/v1beta1/accounts/{}',
        'osmosis_broadcast_tx_url': 'https://lcd.osmosis.zone/cosmos/tx/v1beta1/txs',
        'osmosis_pool_price_url': 'https://lcd.osmosis.zone/osmosis/poolmanager/v1beta1/pools/{}',
        'osmosis_account_balances_url': 'https://lcd.osmosis.zone/cosmos/bank/v1beta1/balances/{}',
        'osmosis_tx_details_url': 'https://lcd.osmosis.zone/cosmos/tx/v1beta1/txs/{}',
    },
    'test': {
        'pool_id': 15,
        'token_in': 'TOSMO',
        'token_out': 'TUSDC',
        'gas_token': 'TOSMO',
        'osmosis_chain_id': 'osmo-test-5',
        'osmosis_status_url': 'https://rpc.testnet.osmosis.zone/status',
        'osmosis_account_info_url': 'https://lcd.testnet.osmosis.zone/cosmos/auth/v1beta1/accounts/{}',
        'osmosis_broadcast_tx_url': 'https://lcd.testnet.osmosis.zone/cosmos/tx/v1beta1/txs',
        'osmosis_pool_price_url': 'https://lcd.testnet.osmosis.zone/osmosis/poolmanager/v1beta1/pools/{}',
        'osmosis_account_balances_url': 'https://lcd.testnet.osmosis.zone/cosmos/bank/v1beta1/balances/{}',
        'osmosis_tx_details_url': 'https://lcd.testnet.osmosis.zone/cosmos/tx/v1beta1/txs/{}',
    },
}

CHAIN_SETTING_KEYS = (
    'osmosis_chain_id',
    'osmosis_status_url',
    'osmosis_account_info_url',
    'osmosis_broadcast_tx_url',
    'osmosis_pool_price_url',
    'osmosis_account_balances_url',
    'osmosis_tx_details_url',
)

# --- Gas Configuration ---
GAS_FEE_AMOUNT = 320_000
GAS_LIMIT = 350_000

# --- Transaction Building ---
TX_MEMO = 'Trade Stream'
TIMEOUT_HEIGHT_OFFSET = 1000
BECH32_PREFIX = 'osmo'

# --- Pool Types ---
CONCENTRATED_LIQUIDITY_POOL_TYPE = '/osmosis.concentratedliquidity.v1beta1.Pool'
BALANCER_POOL_TYPE = '/osmosis.gamm.v1beta1.Pool'

# --- Scheduling / Polling ---
SECONDS_PER_DAY = 24 * 60 * 60
SCHEDULER_TICK_SECONDS = 1.0
POLL_TIMEOUT_SECONDS = 60.0
POLL_INTERVAL_SECONDS = 3.0
MAX_PROMPT_ATTEMPTS = 3

# --- Storage ---
# Per-user directory under the platform config root, e.g. ~/.config/stream/prod/
USER_CONFIG_DIR_NAME = 'stream'
LEDGER_FILE_NAME = 'osmosis_transactions.json'
SQLITE_LEDGER_FILE_NAME = 'osmosis_transactions.db'

# --- Logging ---
LOG_FILE_NAME = 'ts.log'
LOG_FILE_MAX_BYTES = 100 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 20

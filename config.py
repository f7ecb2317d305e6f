"""
Configuration for NEETH smart account operations
"""

import os
from dataclasses import dataclass
from typing import Optional

# Network constants
ENTRYPOINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
SIMPLE_ACCOUNT_FACTORY_V07 = "0x91E60e0613810449d098b0b5Ec8b51A0FE8c8985"
NEETH_ADDRESS = "0x00000000000009B4AB3f1bC2b029bd7513Fbd8ED"

# Empty paymaster field, the account pays gas in native currency
NO_PAYMASTER = "0x"

ARBITRUM_CHAIN_ID = 42161
DEFAULT_RPC_URL = "https://rpc.ankr.com/arbitrum/"
DEFAULT_PIMLICO_CHAIN = "arbitrum"
PIMLICO_URL_TEMPLATE = "https://api.pimlico.io/v2/{chain}/rpc?apikey={api_key}"

# Gas limits stay at zero until bundler estimation; fees until the gas price lookup
DEFAULT_GAS_LIMITS = {
    "call": 0,
    "verification": 0,
    "pre_verification": 0,
    "fee": 1100000
}

# Well-formed ECDSA signature accepted by simulation but never valid
DUMMY_SIGNATURE = (
    "0xfffffffffffffffffffffffffffffff0000000000000000000000000000000007"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
)

DEFAULT_RECIPIENT = "0xcaaa5473929bdd3321cf47cdc971bcbb91cf0313"
DEFAULT_MESSAGE = "NEETH is SAFE"
DEFAULT_DEPOSIT_ETH = "0.00001"
DEFAULT_RECEIPT_TIMEOUT = 120


class ConfigurationError(ValueError):
    """Raised when a required environment setting is missing or invalid"""


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass
class SmartAccountConfig:
    """Configuration for NEETH smart account operations"""

    def __init__(self):
        # Network configuration
        self.rpc_url = os.environ.get('RPC_URL', DEFAULT_RPC_URL)
        self.chain_id = _int_from_env('CHAIN_ID', ARBITRUM_CHAIN_ID)
        self.entry_point_address = ENTRYPOINT_V07
        self.account_factory_address = SIMPLE_ACCOUNT_FACTORY_V07
        self.token_paymaster_address = NEETH_ADDRESS

        # Owner key, generated at startup when absent
        self.private_key: Optional[str] = os.environ.get('PRIVATE_KEY') or None

        # Smart account, derived from the owner when not pinned
        self.smart_account_address: Optional[str] = os.environ.get('SMART_ACCOUNT_ADDRESS') or None
        self.account_salt = _int_from_env('ACCOUNT_SALT', 0)

        # Funding and submission
        self.deposit_amount_eth = os.environ.get('DEPOSIT_AMOUNT_ETH', DEFAULT_DEPOSIT_ETH)
        self.receipt_timeout = _int_from_env('RECEIPT_TIMEOUT', DEFAULT_RECEIPT_TIMEOUT)

        # Bundler configuration
        pimlico_api_key = os.environ.get('PIMLICO_API_KEY')
        if not pimlico_api_key:
            raise ConfigurationError("PIMLICO_API_KEY environment variable is required")
        pimlico_chain = os.environ.get('PIMLICO_CHAIN', DEFAULT_PIMLICO_CHAIN)
        self.bundler_url = PIMLICO_URL_TEMPLATE.format(chain=pimlico_chain, api_key=pimlico_api_key)

"""
Pytest configuration for the NEETH smart account tests.
"""
import sys
from pathlib import Path

import pytest

# Modules live at the repository root
sys.path.insert(0, str(Path(__file__).parent.parent))

from user_operations import UserOperation  # noqa: E402

SMART_ACCOUNT = "0x2a456304C6d79C91Ef8a02Bd87f85486d5d2d7E0"


@pytest.fixture
def bundler_env(monkeypatch):
    """Minimal environment accepted by SmartAccountConfig."""
    for name in ("PRIVATE_KEY", "SMART_ACCOUNT_ADDRESS", "RPC_URL", "CHAIN_ID",
                 "ACCOUNT_SALT", "PIMLICO_CHAIN", "RECEIPT_TIMEOUT", "DEPOSIT_AMOUNT_ETH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PIMLICO_API_KEY", "test-key")


@pytest.fixture
def user_operation():
    return UserOperation(
        sender=SMART_ACCOUNT,
        nonce=7,
        call_data=b"\x12\x34",
        call_gas_limit=100,
        verification_gas_limit=200,
        pre_verification_gas=50,
        max_fee_per_gas=10,
        max_priority_fee_per_gas=1,
    )

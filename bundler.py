"""
Pimlico bundler integration and format conversion utilities for EntryPoint v0.7
"""

import logging
import time
from typing import Any, List, Dict, Optional, Union
import requests

from config import SmartAccountConfig, DUMMY_SIGNATURE
from user_operations import SignedUserOperation, UserOperation, has_paymaster

logger = logging.getLogger(__name__)

RECEIPT_POLL_INTERVAL = 2


class BundlerError(Exception):
    """JSON-RPC error returned by the bundler"""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class UserOperationTimeout(BundlerError):
    """Raised when a submitted UserOperation is not included in time"""


def _hex_bytes(value: bytes) -> str:
    return "0x" + value.hex() if isinstance(value, bytes) else value


def convert_user_operation_to_pimlico_format(
    user_op: Union[UserOperation, SignedUserOperation],
    signature: bytes = None
) -> Dict:
    """Convert a UserOperation to Pimlico bundler format (EntryPoint v0.7)"""
    # Handle SignedUserOperation wrapper
    if isinstance(user_op, SignedUserOperation):
        op = user_op.user_operation
        signature = user_op.signature
    else:
        op = user_op

    pimlico_dict = {
        "sender": op.sender,
        "nonce": hex(op.nonce),
        "callData": _hex_bytes(op.call_data),
        "callGasLimit": hex(op.call_gas_limit),
        "verificationGasLimit": hex(op.verification_gas_limit),
        "preVerificationGas": hex(op.pre_verification_gas),
        "maxFeePerGas": hex(op.max_fee_per_gas),
        "maxPriorityFeePerGas": hex(op.max_priority_fee_per_gas),
        "signature": _hex_bytes(signature) if signature else "0x",
    }

    # Factory fields only while the account is undeployed
    if op.factory:
        pimlico_dict.update({
            "factory": op.factory,
            "factoryData": _hex_bytes(op.factory_data) if op.factory_data else "0x"
        })

    if has_paymaster(op.paymaster):
        pimlico_dict.update({
            "paymaster": op.paymaster,
            "paymasterVerificationGasLimit": hex(op.paymaster_verification_gas_limit),
            "paymasterPostOpGasLimit": hex(op.paymaster_post_op_gas_limit),
            "paymasterData": _hex_bytes(op.paymaster_data) if op.paymaster_data else "0x"
        })

    return pimlico_dict


class BundlerClient:
    """Client for interacting with ERC-4337 bundlers (Pimlico)"""

    def __init__(self, config: SmartAccountConfig):
        self.config = config

    def estimate_user_operation_gas(self, user_operation: UserOperation) -> Dict:
        """Estimate gas for UserOperation using Pimlico API"""
        user_op_dict = convert_user_operation_to_pimlico_format(user_operation)
        user_op_dict['signature'] = DUMMY_SIGNATURE

        return self._make_bundler_request("eth_estimateUserOperationGas", [user_op_dict, self.config.entry_point_address])

    def get_user_operation_gas_price(self) -> Dict:
        """Get current gas prices from Pimlico"""
        return self._make_bundler_request("pimlico_getUserOperationGasPrice", [])

    def send_user_operation(self, signed_user_op: SignedUserOperation) -> str:
        """Send SignedUserOperation to bundler and return its UserOperation hash"""
        logger.info("Sending UserOperation to bundler...")

        user_op_dict = convert_user_operation_to_pimlico_format(signed_user_op)
        logger.debug(f"Full UserOp to bundler: {user_op_dict}")
        user_op_hash = self._make_bundler_request("eth_sendUserOperation", [user_op_dict, self.config.entry_point_address])

        logger.info(f"UserOperation sent successfully: {user_op_hash}")
        return user_op_hash

    def get_user_operation_receipt(self, user_op_hash: str) -> Optional[Dict]:
        """Receipt for an included UserOperation, None while still pending"""
        return self._make_bundler_request("eth_getUserOperationReceipt", [user_op_hash])

    def wait_for_user_operation_receipt(self, user_op_hash: str, timeout: float = 120,
                                        poll_interval: float = RECEIPT_POLL_INTERVAL) -> Dict:
        """Poll the bundler until the UserOperation is included"""
        deadline = time.monotonic() + timeout
        while True:
            receipt = self.get_user_operation_receipt(user_op_hash)
            if receipt:
                if receipt.get('success') is False:
                    raise BundlerError(
                        f"UserOperation {user_op_hash} reverted: {receipt.get('reason')}",
                        data=receipt
                    )
                return receipt
            if time.monotonic() >= deadline:
                raise UserOperationTimeout(f"UserOperation {user_op_hash} not included after {timeout}s")
            time.sleep(poll_interval)

    def _make_bundler_request(self, method: str, params: List) -> Any:
        """Make JSON-RPC request to bundler"""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1
        }

        response = requests.post(
            self.config.bundler_url,
            json=payload,
            headers={'Content-Type': 'application/json'},
            timeout=30
        )
        response.raise_for_status()

        result = response.json()
        if 'error' in result:
            error = result['error']
            logger.error(f"Bundler error on {method}: {error.get('message', 'Unknown error')}")
            raise BundlerError(
                error.get('message', 'Unknown error'),
                code=error.get('code'),
                data=error.get('data')
            )
        return result.get('result')

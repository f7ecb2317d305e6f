"""
UserOperation creation, packing and hashing utilities for EntryPoint v0.7
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Union
from web3 import Web3
from eth_abi import encode

from config import DEFAULT_GAS_LIMITS, NO_PAYMASTER

logger = logging.getLogger(__name__)

# Gas limits and fees are packed as uint128 pairs
UINT128_BYTES = 16


@dataclass
class UserOperation:
    """Unpacked ERC-4337 v0.7 UserOperation"""
    sender: str
    nonce: int
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    factory: Optional[str] = None
    factory_data: bytes = b''
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: bytes = b''

    def with_paymaster(self, paymaster: Optional[str]) -> "UserOperation":
        """Return a copy annotated with the given paymaster field"""
        return replace(self, paymaster=paymaster)


@dataclass
class SignedUserOperation:
    """Wrapper holding a UserOperation and its signature"""
    user_operation: UserOperation
    signature: bytes


# Function selector for execute(address,uint256,bytes)
EXECUTE_SELECTOR = Web3.keccak(text="execute(address,uint256,bytes)")[:4]


def has_paymaster(paymaster: Optional[str]) -> bool:
    return bool(paymaster) and paymaster != NO_PAYMASTER


def encode_execute_call(to_address: str, value: int, data: bytes) -> bytes:
    """Encode execute(address,uint256,bytes) call data for the smart account"""
    encoded_params = encode(
        ['address', 'uint256', 'bytes'],
        [Web3.to_checksum_address(to_address), value, data]
    )
    return EXECUTE_SELECTOR + encoded_params


def create_call_user_operation(
    smart_account: str,
    to_address: str,
    value: int,
    data: bytes,
    nonce: int,
    factory: Optional[str] = None,
    factory_data: bytes = b'',
) -> UserOperation:
    """Create a UserOperation calling to_address through the smart account, with placeholder gas"""
    logger.info(f"Created call: {value} wei and {len(data)} bytes to {to_address}")

    return UserOperation(
        sender=smart_account,
        nonce=nonce,
        factory=factory,
        factory_data=factory_data if factory else b'',
        call_data=encode_execute_call(to_address, value, data),
        call_gas_limit=DEFAULT_GAS_LIMITS["call"],
        verification_gas_limit=DEFAULT_GAS_LIMITS["verification"],
        pre_verification_gas=DEFAULT_GAS_LIMITS["pre_verification"],
        max_fee_per_gas=DEFAULT_GAS_LIMITS["fee"],
        max_priority_fee_per_gas=DEFAULT_GAS_LIMITS["fee"],
    )


def get_required_prefund(user_operation: UserOperation, paymaster: Optional[str] = None) -> int:
    """
    Minimum balance, in wei, the EntryPoint requires up front for this operation.

    When ``paymaster`` is given the operation is first annotated with it.
    Verification gas counts three times when a paymaster is present, since
    the EntryPoint reserves gas for validatePaymasterUserOp and postOp.
    """
    op = user_operation.with_paymaster(paymaster) if paymaster is not None else user_operation

    gas_fields = {
        "callGasLimit": op.call_gas_limit,
        "verificationGasLimit": op.verification_gas_limit,
        "preVerificationGas": op.pre_verification_gas,
        "paymasterVerificationGasLimit": op.paymaster_verification_gas_limit,
        "paymasterPostOpGasLimit": op.paymaster_post_op_gas_limit,
        "maxFeePerGas": op.max_fee_per_gas,
    }
    for name, value in gas_fields.items():
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"Malformed UserOperation field {name}: {value!r}")

    multiplier = 3 if has_paymaster(op.paymaster) else 1
    verification_gas = (
        op.verification_gas_limit
        + op.paymaster_verification_gas_limit
        + op.paymaster_post_op_gas_limit
    )
    required_gas = op.call_gas_limit + verification_gas * multiplier + op.pre_verification_gas
    return required_gas * op.max_fee_per_gas


def _to_int(value: Union[int, str]) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


def apply_sponsorship(user_operation: UserOperation, sponsorship: Dict) -> UserOperation:
    """Return a copy of the UserOperation carrying the sponsorship's gas limits and paymaster"""
    op = replace(user_operation)

    if 'callGasLimit' in sponsorship:
        op.call_gas_limit = _to_int(sponsorship['callGasLimit'])
    if 'verificationGasLimit' in sponsorship:
        op.verification_gas_limit = _to_int(sponsorship['verificationGasLimit'])
    if 'preVerificationGas' in sponsorship:
        op.pre_verification_gas = _to_int(sponsorship['preVerificationGas'])

    op.paymaster = sponsorship.get('paymaster', NO_PAYMASTER)
    if has_paymaster(op.paymaster):
        op.paymaster_verification_gas_limit = _to_int(sponsorship.get('paymasterVerificationGasLimit', 0))
        op.paymaster_post_op_gas_limit = _to_int(sponsorship.get('paymasterPostOpGasLimit', 0))
        paymaster_data = sponsorship.get('paymasterData')
        if paymaster_data:
            op.paymaster_data = bytes(Web3.to_bytes(hexstr=paymaster_data))
    else:
        op.paymaster_verification_gas_limit = 0
        op.paymaster_post_op_gas_limit = 0
        op.paymaster_data = b''

    return op


def _pack_uint128_pair(high: int, low: int) -> bytes:
    return high.to_bytes(UINT128_BYTES, 'big') + low.to_bytes(UINT128_BYTES, 'big')


def get_init_code(user_operation: UserOperation) -> bytes:
    if not user_operation.factory:
        return b''
    return Web3.to_bytes(hexstr=user_operation.factory) + user_operation.factory_data


def get_paymaster_and_data(user_operation: UserOperation) -> bytes:
    if not has_paymaster(user_operation.paymaster):
        return b''
    return (
        Web3.to_bytes(hexstr=user_operation.paymaster)
        + _pack_uint128_pair(
            user_operation.paymaster_verification_gas_limit,
            user_operation.paymaster_post_op_gas_limit,
        )
        + user_operation.paymaster_data
    )


def pack_user_operation(user_operation: UserOperation) -> bytes:
    """ABI-encode the PackedUserOperation fields covered by the signature"""
    op = user_operation
    return encode(
        ['address', 'uint256', 'bytes32', 'bytes32', 'bytes32', 'uint256', 'bytes32', 'bytes32'],
        [
            Web3.to_checksum_address(op.sender),
            op.nonce,
            Web3.keccak(get_init_code(op)),
            Web3.keccak(op.call_data),
            _pack_uint128_pair(op.verification_gas_limit, op.call_gas_limit),
            op.pre_verification_gas,
            _pack_uint128_pair(op.max_priority_fee_per_gas, op.max_fee_per_gas),
            Web3.keccak(get_paymaster_and_data(op)),
        ]
    )


def get_user_operation_hash(user_operation: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """Hash signed by the smart account owner"""
    packed_hash = Web3.keccak(pack_user_operation(user_operation))
    return bytes(Web3.keccak(encode(
        ['bytes32', 'address', 'uint256'],
        [packed_hash, Web3.to_checksum_address(entry_point), chain_id]
    )))

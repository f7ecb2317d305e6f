"""
Owner key handling and UserOperation signing for the smart account
"""

import logging
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from user_operations import SignedUserOperation, UserOperation, get_user_operation_hash

logger = logging.getLogger(__name__)


def load_or_create_signer(private_key: Optional[str] = None) -> LocalAccount:
    """Load the owner account from a private key, generating a new one when none is set"""
    if private_key:
        signer = Account.from_key(private_key)
    else:
        signer = Account.create()
        logger.warning("PRIVATE_KEY not set, generated an ephemeral owner key")

    logger.info(f"Signer: {signer.address}")
    return signer


def sign_user_operation(
    user_operation: UserOperation,
    signer: LocalAccount,
    entry_point: str,
    chain_id: int,
) -> SignedUserOperation:
    """Sign the UserOperation hash as an EIP-191 personal message"""
    user_op_hash = get_user_operation_hash(user_operation, entry_point, chain_id)
    signed_message = signer.sign_message(encode_defunct(primitive=user_op_hash))
    logger.info(f"Signed UserOperation hash 0x{user_op_hash.hex()}")

    return SignedUserOperation(
        user_operation=user_operation,
        signature=bytes(signed_message.signature)
    )

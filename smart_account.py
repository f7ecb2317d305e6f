"""
Main NEETH smart account service orchestration
"""

import logging
from dataclasses import replace
from typing import Optional, Tuple
from web3 import Web3
from eth_account.signers.local import LocalAccount

from config import SmartAccountConfig
from bundler import BundlerClient, BundlerError
from paymaster import PaymasterSelector
from signer import load_or_create_signer, sign_user_operation
from user_operations import (
    UserOperation,
    apply_sponsorship,
    create_call_user_operation,
    get_required_prefund,
)

logger = logging.getLogger(__name__)

GET_NONCE_ABI = [{
    "inputs": [{"name": "sender", "type": "address"}, {"name": "key", "type": "uint192"}],
    "name": "getNonce",
    "outputs": [{"name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]

ACCOUNT_FACTORY_ABI = [
    {
        "inputs": [{"name": "owner", "type": "address"}, {"name": "salt", "type": "uint256"}],
        "name": "getAddress",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "owner", "type": "address"}, {"name": "salt", "type": "uint256"}],
        "name": "createAccount",
        "outputs": [{"name": "ret", "type": "address"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
]

ERC20_BALANCE_OF_ABI = [{
    "inputs": [{"name": "account", "type": "address"}],
    "name": "balanceOf",
    "outputs": [{"name": "", "type": "uint256"}],
    "stateMutability": "view",
    "type": "function"
}]

NEETH_DEPOSIT_ABI = [{
    "inputs": [{"name": "to", "type": "address"}],
    "name": "depositTo",
    "outputs": [],
    "stateMutability": "payable",
    "type": "function"
}]


class DepositError(Exception):
    """Raised when the NEETH deposit transaction reverts"""


class SmartAccountService:
    """Main service for NEETH-sponsored smart account operations"""

    def __init__(
        self,
        config: SmartAccountConfig,
        signer: Optional[LocalAccount] = None,
        web3: Optional[Web3] = None,
        bundler_client: Optional[BundlerClient] = None,
    ):
        self.config = config
        self.signer = signer or load_or_create_signer(config.private_key)
        self.web3 = web3 or Web3(Web3.HTTPProvider(config.rpc_url))
        self.bundler_client = bundler_client or BundlerClient(config)
        self.paymaster_selector = PaymasterSelector(
            token_paymaster=config.token_paymaster_address,
            balance_query=self.get_token_balance,
            gas_estimator=self.bundler_client.estimate_user_operation_gas,
            prefund_calculator=get_required_prefund,
        )
        self._account_address = (
            Web3.to_checksum_address(config.smart_account_address)
            if config.smart_account_address else None
        )

    @property
    def account_address(self) -> str:
        """Counterfactual smart account address, derived once per service"""
        if self._account_address is None:
            factory = self._account_factory()
            self._account_address = factory.functions.getAddress(
                self.signer.address, self.config.account_salt
            ).call()
            logger.info(f"Smart Account: {self._account_address}")
        return self._account_address

    def is_deployed(self) -> bool:
        return len(self.web3.eth.get_code(self.account_address)) > 0

    def get_token_balance(self, token: str, account: str) -> int:
        """ERC-20 balanceOf for account"""
        contract = self.web3.eth.contract(
            address=self.web3.to_checksum_address(token),
            abi=ERC20_BALANCE_OF_ABI
        )
        return contract.functions.balanceOf(self.web3.to_checksum_address(account)).call()

    def deposit(self, amount_wei: Optional[int] = None) -> str:
        """Deposit native currency into NEETH on behalf of the smart account"""
        if amount_wei is None:
            amount_wei = self.web3.to_wei(self.config.deposit_amount_eth, 'ether')

        neeth = self.web3.eth.contract(
            address=self.web3.to_checksum_address(self.config.token_paymaster_address),
            abi=NEETH_DEPOSIT_ABI
        )
        transaction = neeth.functions.depositTo(self.account_address).build_transaction({
            'from': self.signer.address,
            'value': amount_wei,
            'nonce': self.web3.eth.get_transaction_count(self.signer.address),
            'chainId': self.config.chain_id,
        })
        signed_transaction = self.signer.sign_transaction(transaction)
        tx_hash = self.web3.eth.send_raw_transaction(signed_transaction.raw_transaction)
        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash)

        deposit_tx = self.web3.to_hex(tx_hash)
        if receipt['status'] != 1:
            raise DepositError(f"NEETH deposit {deposit_tx} reverted")
        logger.info(f"Deposit Tx: {deposit_tx}")
        return deposit_tx

    async def send_transaction(self, to: str, value: int = 0, data: bytes = b'') -> str:
        """Send a call from the smart account and return the inclusion transaction hash"""
        factory, factory_data = self._get_factory_args()

        user_operation = create_call_user_operation(
            smart_account=self.account_address,
            to_address=to,
            value=value,
            data=data,
            nonce=self._get_nonce(),
            factory=factory,
            factory_data=factory_data,
        )
        user_operation = self._apply_gas_price(user_operation)

        sponsorship = await self.paymaster_selector.sponsor_user_operation(
            user_operation, self.account_address
        )
        user_operation = apply_sponsorship(user_operation, sponsorship)

        signed_user_operation = sign_user_operation(
            user_operation,
            self.signer,
            self.config.entry_point_address,
            self.config.chain_id,
        )
        user_op_hash = self.bundler_client.send_user_operation(signed_user_operation)

        receipt = self.bundler_client.wait_for_user_operation_receipt(
            user_op_hash, timeout=self.config.receipt_timeout
        )
        tx_hash = receipt['receipt']['transactionHash']
        logger.info(f"Tx Hash: {tx_hash}")
        return tx_hash

    def _apply_gas_price(self, user_operation: UserOperation) -> UserOperation:
        """Use Pimlico's fast gas price for the UserOperation fees"""
        gas_prices = self.bundler_client.get_user_operation_gas_price()
        if not gas_prices or 'fast' not in gas_prices:
            raise BundlerError(f"Bundler returned no fast gas price: {gas_prices!r}")
        fast_prices = gas_prices['fast']
        return replace(
            user_operation,
            max_fee_per_gas=int(fast_prices['maxFeePerGas'], 16),
            max_priority_fee_per_gas=int(fast_prices['maxPriorityFeePerGas'], 16),
        )

    def _get_factory_args(self) -> Tuple[Optional[str], bytes]:
        """Factory and factory data for the first UserOperation of an undeployed account"""
        if self.is_deployed():
            return None, b''

        factory = self._account_factory()
        factory_data = factory.encode_abi(
            'createAccount', args=[self.signer.address, self.config.account_salt]
        )
        return self.config.account_factory_address, Web3.to_bytes(hexstr=factory_data)

    def _account_factory(self):
        return self.web3.eth.contract(
            address=self.web3.to_checksum_address(self.config.account_factory_address),
            abi=ACCOUNT_FACTORY_ABI
        )

    def _get_nonce(self) -> int:
        """Get current nonce for smart account from EntryPoint"""
        entry_point_contract = self.web3.eth.contract(
            address=self.web3.to_checksum_address(self.config.entry_point_address),
            abi=GET_NONCE_ABI
        )

        nonce = entry_point_contract.functions.getNonce(
            self.account_address,
            0  # Default key
        ).call()

        logger.info(f"Current nonce: {nonce}")
        return nonce


def create_smart_account_service() -> SmartAccountService:
    """Create a smart account service with default configuration"""
    return SmartAccountService(SmartAccountConfig())

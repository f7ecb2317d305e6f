"""
Paymaster selection for NEETH sponsored UserOperations

Chooses, per UserOperation, whether gas is paid by the NEETH token
paymaster or by the smart account in native currency, then estimates gas
under that same choice.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from config import NO_PAYMASTER
from user_operations import UserOperation

logger = logging.getLogger(__name__)

PrefundCalculator = Callable[[UserOperation, Optional[str]], int]
BalanceQuery = Callable[[str, str], int]
GasEstimator = Callable[[UserOperation], Dict]


@dataclass(frozen=True)
class TokenPaymaster:
    """Gas is sponsored by the token paymaster at this address"""
    address: str

    @property
    def paymaster_field(self) -> str:
        return self.address


@dataclass(frozen=True)
class NoPaymaster:
    """Gas is paid by the smart account in native currency"""

    @property
    def paymaster_field(self) -> str:
        return NO_PAYMASTER


PaymasterChoice = Union[TokenPaymaster, NoPaymaster]


def choose_paymaster(balance: int, required_prefund: int, token_paymaster: str) -> PaymasterChoice:
    """
    Pick the token paymaster only when the balance strictly exceeds the prefund.

    A balance exactly equal to the prefund falls through to native currency.
    """
    if balance > required_prefund:
        return TokenPaymaster(token_paymaster)
    return NoPaymaster()


class PaymasterSelector:
    """Decides who pays gas for a UserOperation and estimates gas accordingly"""

    def __init__(
        self,
        token_paymaster: str,
        balance_query: BalanceQuery,
        gas_estimator: GasEstimator,
        prefund_calculator: PrefundCalculator,
    ):
        self.token_paymaster = token_paymaster
        self.balance_query = balance_query
        self.gas_estimator = gas_estimator
        self.prefund_calculator = prefund_calculator

    async def sponsor_user_operation(self, user_operation: UserOperation, account: str) -> Dict:
        """
        Return gas estimates merged with the chosen paymaster field.

        Errors from the prefund calculator, the balance query or the gas
        estimator propagate as raised; no fallback to the other paymaster
        is attempted.
        """
        required_prefund = self.prefund_calculator(user_operation, self.token_paymaster)
        logger.info(f"Required Prefund: {required_prefund}")

        balance = self.balance_query(self.token_paymaster, account)
        logger.info(f"NEETH Balance: {balance}")

        choice = choose_paymaster(balance, required_prefund, self.token_paymaster)
        paymaster = choice.paymaster_field

        gas_estimates = self.gas_estimator(user_operation.with_paymaster(paymaster))
        label = "NEETH" if isinstance(choice, TokenPaymaster) else "ETH"
        logger.info(f"Gas Estimates: ({label}) {gas_estimates}")

        return {
            **gas_estimates,
            'paymaster': paymaster,
        }

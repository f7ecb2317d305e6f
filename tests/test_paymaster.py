"""
Tests for NEETH paymaster selection.
"""
import asyncio
from unittest.mock import Mock

import pytest

from config import NEETH_ADDRESS, NO_PAYMASTER
from paymaster import NoPaymaster, PaymasterSelector, TokenPaymaster, choose_paymaster

ACCOUNT = "0x2a456304C6d79C91Ef8a02Bd87f85486d5d2d7E0"
ESTIMATES = {
    "callGasLimit": "0x1000",
    "verificationGasLimit": "0x2000",
    "preVerificationGas": "0x300",
}


def make_selector(balance=None, required_prefund=500, estimates=None):
    balance_query = Mock(return_value=balance)
    gas_estimator = Mock(return_value=dict(estimates or ESTIMATES))
    prefund_calculator = Mock(return_value=required_prefund)
    selector = PaymasterSelector(
        token_paymaster=NEETH_ADDRESS,
        balance_query=balance_query,
        gas_estimator=gas_estimator,
        prefund_calculator=prefund_calculator,
    )
    return selector, balance_query, gas_estimator, prefund_calculator


def sponsor(selector, user_operation):
    return asyncio.run(selector.sponsor_user_operation(user_operation, ACCOUNT))


class TestChoosePaymaster:
    """Tests for the pure paymaster decision."""

    @pytest.mark.parametrize("balance,required", [(1000, 500), (501, 500), (1, 0)])
    def test_balance_above_prefund_selects_token(self, balance, required):
        choice = choose_paymaster(balance, required, NEETH_ADDRESS)
        assert choice == TokenPaymaster(NEETH_ADDRESS)
        assert choice.paymaster_field == NEETH_ADDRESS

    @pytest.mark.parametrize("balance,required", [(500, 500), (0, 0), (499, 500), (0, 10**18)])
    def test_balance_at_or_below_prefund_selects_native(self, balance, required):
        choice = choose_paymaster(balance, required, NEETH_ADDRESS)
        assert isinstance(choice, NoPaymaster)
        assert choice.paymaster_field == NO_PAYMASTER


class TestPaymasterSelector:
    """Tests for PaymasterSelector.sponsor_user_operation."""

    def test_token_branch(self, user_operation):
        selector, balance_query, gas_estimator, prefund_calculator = make_selector(balance=1000)

        result = sponsor(selector, user_operation)

        assert result == {**ESTIMATES, "paymaster": NEETH_ADDRESS}
        prefund_calculator.assert_called_once_with(user_operation, NEETH_ADDRESS)
        balance_query.assert_called_once_with(NEETH_ADDRESS, ACCOUNT)
        estimated_op = gas_estimator.call_args.args[0]
        assert estimated_op.paymaster == NEETH_ADDRESS

    def test_equal_balance_takes_native_branch(self, user_operation):
        selector, _, gas_estimator, _ = make_selector(balance=500, required_prefund=500)

        result = sponsor(selector, user_operation)

        assert result["paymaster"] == NO_PAYMASTER
        assert gas_estimator.call_args.args[0].paymaster == NO_PAYMASTER

    def test_zero_balance_and_prefund_takes_native_branch(self, user_operation):
        selector, _, _, _ = make_selector(balance=0, required_prefund=0)
        assert sponsor(selector, user_operation)["paymaster"] == NO_PAYMASTER

    @pytest.mark.parametrize("balance", [0, 499, 500, 501, 10**6])
    def test_returned_paymaster_matches_estimate_annotation(self, user_operation, balance):
        selector, _, gas_estimator, _ = make_selector(balance=balance)

        result = sponsor(selector, user_operation)

        assert gas_estimator.call_count == 1
        assert result["paymaster"] == gas_estimator.call_args.args[0].paymaster

    def test_estimate_paymaster_field_overrides_bundler_value(self, user_operation):
        estimates = {**ESTIMATES, "paymaster": "0xdeadbeef"}
        selector, _, _, _ = make_selector(balance=0, estimates=estimates)
        assert sponsor(selector, user_operation)["paymaster"] == NO_PAYMASTER

    def test_does_not_mutate_pending_operation(self, user_operation):
        selector, _, _, _ = make_selector(balance=1000)
        sponsor(selector, user_operation)
        assert user_operation.paymaster is None

    def test_balance_failure_propagates_without_estimation(self, user_operation):
        selector, balance_query, gas_estimator, _ = make_selector()
        error = ConnectionError("rpc unreachable")
        balance_query.side_effect = error

        with pytest.raises(ConnectionError) as exc_info:
            sponsor(selector, user_operation)

        assert exc_info.value is error
        assert gas_estimator.call_count == 0

    def test_prefund_failure_skips_balance_and_estimation(self, user_operation):
        selector, balance_query, gas_estimator, prefund_calculator = make_selector(balance=1000)
        prefund_calculator.side_effect = ValueError("malformed")

        with pytest.raises(ValueError, match="malformed"):
            sponsor(selector, user_operation)

        assert balance_query.call_count == 0
        assert gas_estimator.call_count == 0

    def test_estimation_failure_does_not_fall_back(self, user_operation):
        selector, _, gas_estimator, _ = make_selector(balance=1000)
        gas_estimator.side_effect = RuntimeError("AA33 reverted")

        with pytest.raises(RuntimeError, match="AA33"):
            sponsor(selector, user_operation)

        assert gas_estimator.call_count == 1
        assert gas_estimator.call_args.args[0].paymaster == NEETH_ADDRESS

    def test_each_call_reads_fresh_values(self, user_operation):
        selector, balance_query, _, prefund_calculator = make_selector()
        balance_query.side_effect = [1000, 100]

        first = sponsor(selector, user_operation)
        second = sponsor(selector, user_operation)

        assert first["paymaster"] == NEETH_ADDRESS
        assert second["paymaster"] == NO_PAYMASTER
        assert prefund_calculator.call_count == 2
        assert balance_query.call_count == 2

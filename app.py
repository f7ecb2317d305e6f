"""
NEETH Smart Account Runner

A single-shot script that demonstrates:
1. Creating or loading an owner key and deriving its ERC-4337 smart account
2. Funding the account with a NEETH deposit
3. Submitting a UserOperation via the Pimlico bundler, sponsored by the NEETH
   token paymaster when the account's NEETH balance covers the prefund
"""

import asyncio
import logging
import os
import sys
from argparse import ArgumentParser, Namespace
from typing import List, Optional

from web3 import Web3

from config import DEFAULT_MESSAGE, DEFAULT_RECIPIENT, SmartAccountConfig
from smart_account import SmartAccountService

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> Namespace:
    parser = ArgumentParser(
        prog="neeth-runner",
        description="Send a NEETH-sponsored UserOperation from a smart account",
    )
    parser.add_argument("--to", default=DEFAULT_RECIPIENT, help="Call target address")
    parser.add_argument("--message", default=DEFAULT_MESSAGE, help="UTF-8 call data sent to the target")
    parser.add_argument("--value", type=int, default=0, help="Native value in wei sent with the call")
    parser.add_argument("--skip-deposit", action="store_true", help="Do not fund the account before sending")
    return parser.parse_args(argv)


async def run(args: Namespace, service: SmartAccountService) -> str:
    """Fund the smart account and send one UserOperation, returning its transaction hash"""
    logger.info(f"Owner {service.signer.address} controls {service.account_address}")

    if not args.skip_deposit:
        service.deposit()

    return await service.send_transaction(
        to=args.to,
        value=args.value,
        data=Web3.to_bytes(text=args.message),
    )


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO').upper())
    args = parse_args(argv)

    try:
        service = SmartAccountService(SmartAccountConfig())
        asyncio.run(run(args, service))
    except Exception as e:
        logger.error(f"UserOperation submission failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

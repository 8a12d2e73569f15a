#!/usr/bin/env python3
"""
Membership Operator Script

Checks, buys or renews a membership key for a wallet held as a raw key.
Reads the service configuration (.env / environment) for the lock, payment
token and RPC endpoint. The wallet key is taken from WALLET_PRIVATE_KEY.

Usage:
    # Status of one or more wallets (first wallet that ever held a key decides)
    python3 scripts/membership.py status 0xabc... 0xdef...

    # Buy a key for the WALLET_PRIVATE_KEY account
    python3 scripts/membership.py purchase

    # Renew the account's key (token id looked up when omitted)
    python3 scripts/membership.py renew --token-id 42
"""

import argparse
import asyncio
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eth_account import Account  # noqa: E402

from app.config import settings  # noqa: E402
from app.exceptions import MembershipGateError  # noqa: E402
from app.models.api import TransactionAction  # noqa: E402
from app.observability import get_logger, setup_logging  # noqa: E402
from app.services.chain import Web3ChainGateway, build_web3  # noqa: E402
from app.services.membership import MembershipVerifier  # noqa: E402
from app.services.orchestrator import EntitlementOrchestrator  # noqa: E402
from app.services.wallet import LocalKeyWallet  # noqa: E402

logger = get_logger("scripts.membership")

WALLET_KEY_ENV = "WALLET_PRIVATE_KEY"


async def show_status(addresses: list[str]) -> int:
    """Print the membership status of the candidate wallets."""
    gateway = Web3ChainGateway(build_web3(settings))
    try:
        result = await MembershipVerifier(gateway).resolve(addresses, settings.contract_ref)
    finally:
        await gateway.close()

    print(f"status: {result.status.value}")
    if result.deciding_wallet:
        print(f"wallet: {result.deciding_wallet}")
    return 0


async def run_action(action: TransactionAction, token_id: int | None) -> int:
    """Purchase or renew using the local key."""
    private_key = os.environ.get(WALLET_KEY_ENV)
    if not private_key:
        logger.error("wallet_key_missing", env_var=WALLET_KEY_ENV)
        return 1

    web3 = build_web3(settings)
    gateway = Web3ChainGateway(web3)
    try:
        wallet = LocalKeyWallet(Account.from_key(private_key), web3)
        orchestrator = EntitlementOrchestrator(settings, gateway)
        intent = orchestrator.build_intent(action, wallet.address, token_id=token_id)

        if action == TransactionAction.PURCHASE:
            tx_hash = await orchestrator.purchase(wallet, intent)
        else:
            tx_hash = await orchestrator.renew(wallet, intent)

        status = await gateway.wait_for_receipt(tx_hash)
    finally:
        await gateway.close()

    print(f"transaction: {tx_hash}")
    print(f"receipt status: {status}")
    return 0 if status == 1 else 1


def main():
    parser = argparse.ArgumentParser(
        description="Check, purchase or renew a membership key",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  python3 scripts/membership.py status 0xabc...
  {WALLET_KEY_ENV}=0x... python3 scripts/membership.py purchase
  {WALLET_KEY_ENV}=0x... python3 scripts/membership.py renew --token-id 42
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status", help="Show membership status")
    status_parser.add_argument("addresses", nargs="+", help="Wallet addresses, in preference order")

    subparsers.add_parser("purchase", help="Buy a new key")

    renew_parser = subparsers.add_parser("renew", help="Extend an existing key")
    renew_parser.add_argument("--token-id", type=int, help="Key token id (default: first owned)")

    args = parser.parse_args()

    setup_logging()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        if args.command == "status":
            code = asyncio.run(show_status(args.addresses))
        elif args.command == "purchase":
            code = asyncio.run(run_action(TransactionAction.PURCHASE, None))
        else:
            code = asyncio.run(run_action(TransactionAction.RENEW, args.token_id))
    except MembershipGateError as e:
        logger.error("membership_command_failed", command=args.command, error=str(e))
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()

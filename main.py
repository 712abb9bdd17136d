#!/usr/bin/env python3
"""
SuiVote -- zkLogin helper commands.

Tools for operating a SuiVote deployment: check the epoch a new login would
expire at, derive a zkLogin address offline from an identity token and salt,
read an address's SUI balance, and fund an address from the devnet or testnet
faucet.

Usage:
  python main.py epoch
  python main.py epoch --network testnet
  python main.py address --jwt eyJhbGciOi... --salt 129390038577185583942388216820280642146
  python main.py balance 0x5f3c...a1
  python main.py --network testnet faucet 0x5f3c...a1

Environment variables:
  None required. --fullnode overrides the public fullnode for --network,
  --faucet the public faucet.
"""

import argparse
import logging

from auth.epochs import EpochTracker
from auth.zkcrypto import decode_identity_token, jwt_to_address
from core.config import FAUCET_URL_TEMPLATE, FULLNODE_URL_TEMPLATE, MAX_EPOCH_OFFSET
from core.errors import FaucetUnavailable, ZkLoginError
from core.faucet import FaucetClient
from core.ledger import LedgerClient
from core.models import MIST_PER_SUI

logger = logging.getLogger("suivote.cli")


def _ledger(args: argparse.Namespace) -> LedgerClient:
    return LedgerClient(args.fullnode or FULLNODE_URL_TEMPLATE.format(network=args.network))


def _cmd_epoch(args: argparse.Namespace) -> None:
    ledger = _ledger(args)
    try:
        epochs = EpochTracker(ledger, args.offset)
        current = epochs.fetch_current_epoch()
    finally:
        ledger.close()
    print(f"  Network        : {args.network}")
    print(f"  Current epoch  : {current}")
    print(f"  Login expiry   : {epochs.compute_expiry_epoch(current, args.offset)} (offset {args.offset})")


def _cmd_address(args: argparse.Namespace) -> None:
    claims = decode_identity_token(args.jwt)
    address = jwt_to_address(args.jwt, int(args.salt))
    print(f"  Issuer   : {claims.issuer}")
    print(f"  Subject  : {claims.subject}")
    print(f"  Audience : {claims.audience}")
    print(f"  Address  : {address}")


def _cmd_balance(args: argparse.Namespace) -> None:
    ledger = _ledger(args)
    try:
        mist = ledger.get_balance(args.address)
    finally:
        ledger.close()
    print(f"  {args.address}: {mist / MIST_PER_SUI:.4f} SUI ({mist} MIST)")


def _cmd_faucet(args: argparse.Namespace) -> None:
    if args.network == "mainnet":
        raise FaucetUnavailable(f"No faucet is available on {args.network}.")
    faucet = FaucetClient(args.faucet or FAUCET_URL_TEMPLATE.format(network=args.network))
    try:
        coins = faucet.request_sui(args.address)
    finally:
        faucet.close()
    for coin in coins:
        print(f"  {coin.get('id')}: {int(coin.get('amount', 0)) / MIST_PER_SUI:.4f} SUI ({coin.get('transferTxDigest')})")
    print(f"  Funded {args.address} on {args.network}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="suivote",
        description="zkLogin helper commands for SuiVote.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py epoch
  python main.py address --jwt $ID_TOKEN --salt $SALT
  python main.py balance 0x5f3c...a1 --network testnet
  python main.py --network testnet faucet 0x5f3c...a1
        """,
    )
    parser.add_argument(
        "--network",
        choices=["devnet", "testnet", "mainnet"],
        default="devnet",
        help="Sui network whose public fullnode to use (default: devnet)",
    )
    parser.add_argument(
        "--fullnode",
        metavar="URL",
        default=None,
        help="Explicit fullnode JSON-RPC URL; overrides --network",
    )
    parser.add_argument(
        "--faucet",
        metavar="URL",
        default=None,
        help="Explicit faucet URL; overrides --network (never used on mainnet)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log ledger calls to stderr",
    )
    sub = parser.add_subparsers(dest="command")

    epoch = sub.add_parser("epoch", help="Show the current epoch and the expiry a login would get")
    epoch.add_argument(
        "--offset",
        type=int,
        default=MAX_EPOCH_OFFSET,
        help=f"Epochs a session stays valid (default: {MAX_EPOCH_OFFSET})",
    )
    epoch.set_defaults(handler=_cmd_epoch)

    address = sub.add_parser("address", help="Derive a zkLogin address offline")
    address.add_argument("--jwt", required=True, help="OpenID Connect id_token")
    address.add_argument("--salt", required=True, help="User salt (decimal)")
    address.set_defaults(handler=_cmd_address)

    balance = sub.add_parser("balance", help="Show the SUI balance of an address")
    balance.add_argument("address", metavar="ADDRESS")
    balance.set_defaults(handler=_cmd_balance)

    faucet = sub.add_parser("faucet", help="Request test SUI for an address (devnet/testnet)")
    faucet.add_argument("address", metavar="ADDRESS")
    faucet.set_defaults(handler=_cmd_faucet)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)-5s %(name)s %(message)s",
    )

    try:
        args.handler(args)
    except ZkLoginError as e:
        print(f"  [!] {e.message}" + (f" ({e.detail})" if e.detail else ""))
        raise SystemExit(1) from e
    except ValueError as e:
        print(f"  [!] {e}")
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()

"""CLI entrypoint for running a single bridge transfer."""

from __future__ import annotations

import argparse
import os
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from web3 import Web3

from autobridge.config import BridgeConfig, load_config
from autobridge.core.fees import GasOverrides
from autobridge.core.transfer import BridgeClient, TransferRequest
from autobridge.core.utils import get_logger

LOGGER = get_logger("autobridge.cli")

load_dotenv()


def _gwei(value: str) -> int:
    try:
        return int(Web3.to_wei(Decimal(value), "gwei"))
    except (InvalidOperation, ValueError) as exc:
        raise argparse.ArgumentTypeError(f"invalid gwei amount: {value}") from exc


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge a native coin or ERC20 token through the bridge contract")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument("--source", help="Source chain name (defaults.source_chain)")
    parser.add_argument("--dest", help="Destination chain name (defaults.dest_chain)")
    parser.add_argument("--asset", help="'native', a wrapped token symbol, or a token address (defaults.asset)")
    parser.add_argument("--amount", help="Decimal amount in asset units (defaults.amount)")
    parser.add_argument("--recipient", default=os.getenv("RECIPIENT"), help="Recipient address (defaults to sender)")
    parser.add_argument("--referral", default=os.getenv("REFERRAL"), help="Referral address")
    parser.add_argument("--max-fee-gwei", type=_gwei, default=None, help="Override maxFeePerGas")
    parser.add_argument("--priority-fee-gwei", type=_gwei, default=None, help="Override maxPriorityFeePerGas")
    parser.add_argument("--gas-limit", type=int, default=None, help="Override the gas limit")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--dry-run", action="store_true", help="Run every pre-check without broadcasting")
    group.add_argument("--send", action="store_true", help="Broadcast the transfer")
    return parser.parse_args(argv)


def build_request(args: argparse.Namespace, config: BridgeConfig, private_key: str) -> TransferRequest:
    """Merge CLI flags with the config ``defaults`` section."""
    defaults = config.defaults
    return TransferRequest(
        source_chain=args.source or defaults.source_chain or "",
        dest_chain=args.dest or defaults.dest_chain or "",
        asset=args.asset or defaults.asset or "native",
        amount=args.amount or defaults.amount or "",
        private_key=private_key,
        recipient=args.recipient or None,
        referral=args.referral or None,
        gas=GasOverrides(
            max_fee_per_gas=args.max_fee_gwei,
            max_priority_fee_per_gas=args.priority_fee_gwei,
            gas_limit=args.gas_limit,
        ),
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    private_key_env = os.getenv("PRIVATE_KEY") or ""
    private_key = private_key_env.strip()

    if not private_key:
        print("Error: PRIVATE_KEY environment variable not set")
        sys.exit(1)

    try:
        config = load_config(args.config)
        request = build_request(args, config, private_key)
        client = BridgeClient(config)
        if args.dry_run:
            plan = client.prepare(request)
            client.log_plan(plan)
            LOGGER.info("Dry run complete; nothing was broadcast")
        else:
            tx_hash = client.transfer(request)
            print(f"Bridge transfer confirmed: {tx_hash}")
    except Exception as exc:
        print(f"\nError: {exc}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()

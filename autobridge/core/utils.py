"""Utility helpers shared across autobridge core modules."""

from __future__ import annotations

import logging
from typing import Optional

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def get_logger(name: str = "autobridge") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def probe_web3(web3: Web3, *, expected_chain_id: Optional[int] = None) -> int:
    """Read the latest block number and optionally check the chain id.

    Returns the block number. Transport errors propagate; a chain id mismatch
    raises ``ValueError``.
    """
    block_number = web3.eth.block_number
    if expected_chain_id is not None and web3.eth.chain_id != expected_chain_id:
        raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {web3.eth.chain_id}")
    return block_number


def scale(value: int, numerator: int, denominator: int) -> int:
    """Multiply ``value`` by ``numerator / denominator`` without leaving integer arithmetic."""
    return value * numerator // denominator


def to_gwei(value: int) -> str:
    return str(Web3.from_wei(value, "gwei"))


__all__ = [
    "ZERO_ADDRESS",
    "get_logger",
    "probe_web3",
    "scale",
    "to_gwei",
]

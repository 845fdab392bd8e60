"""Token balance, allowance and unit helpers."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

from web3 import Web3
from web3.contract import Contract

from autobridge.core.utils import get_logger
from autobridge.exceptions import ValidationError

LOGGER = get_logger("autobridge.tokens")

DEFAULT_DECIMALS = 18
# uint256 needs 78 digits; leave room for the fractional part.
UNIT_PRECISION = 160

ERC20_ABI = [
    {
        "constant": False,
        "inputs": [{"name": "_spender", "type": "address"}, {"name": "_value", "type": "uint256"}],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}, {"name": "_spender", "type": "address"}],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]

APPROVE_SIGNATURE = "approve(address,uint256)"


def get_contract(web3: Web3, token_address: str) -> Contract:
    """Return an ERC20 contract instance for ``token_address``."""
    return web3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)


def balance_of(web3: Web3, token_address: str, owner: str) -> int:
    """Fetch the ERC20 balance."""
    contract = get_contract(web3, token_address)
    return contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()


def allowance_of(web3: Web3, token_address: str, owner: str, spender: str) -> int:
    """Fetch the ERC20 allowance."""
    contract = get_contract(web3, token_address)
    return contract.functions.allowance(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(spender),
    ).call()


def decimals_of(web3: Web3, token_address: str, default: int = DEFAULT_DECIMALS) -> int:
    """Fetch the ERC20 decimals, falling back to ``default`` when the read fails."""
    contract = get_contract(web3, token_address)
    try:
        return int(contract.functions.decimals().call())
    except Exception as exc:  # tokens without decimals() still bridge with 18
        LOGGER.warning("decimals() read failed token=%s error=%s; assuming %s", token_address, exc, default)
        return default


def parse_decimal(amount: str) -> Decimal:
    """Parse a human readable amount, rejecting anything that is not a positive number."""
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount", value=amount) from None
    if not value.is_finite() or value <= 0:
        raise ValidationError(f"Amount must be a positive number: {amount!r}", field="amount", value=amount)
    return value


def parse_units(amount: str, decimals: int) -> int:
    """Convert a positive decimal string into integer base units.

    Raises ``ValidationError`` when the amount is not a positive number or
    carries more fractional digits than ``decimals`` allows.
    """
    value = parse_decimal(amount)
    with localcontext() as ctx:
        ctx.prec = UNIT_PRECISION
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount {amount} has more than {decimals} decimal places",
            field="amount",
            value=amount,
        )
    return int(scaled)


def format_units(value: int, decimals: int) -> str:
    """Render integer base units as a plain decimal string."""
    with localcontext() as ctx:
        ctx.prec = UNIT_PRECISION
        text = format(Decimal(value).scaleb(-decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


__all__ = [
    "APPROVE_SIGNATURE",
    "DEFAULT_DECIMALS",
    "ERC20_ABI",
    "allowance_of",
    "balance_of",
    "decimals_of",
    "format_units",
    "get_contract",
    "parse_decimal",
    "parse_units",
]

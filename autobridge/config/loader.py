"""Config loader for the autobridge project."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional, Tuple

from web3 import Web3

from autobridge.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path("config.json")
CONFIG_PATH_ENV = "AUTOBRIDGE_CONFIG"

DEFAULT_PUBLIC_RPC_URL = "https://ethereum-sepolia.publicnode.com"
DEFAULT_REQUEST_TIMEOUT_MS = 10_000
DEFAULT_RECEIPT_TIMEOUT = 180.0
DEFAULT_RECEIPT_POLL_LATENCY = 2.0

# Bridge contracts take the destination chain as uint16.
MAX_BRIDGE_CHAIN_ID = 2**16 - 1


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigurationError(f"{context} missing required keys: {', '.join(missing)}")


def _require_mapping(data: Any, context: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{context} must be a mapping")
    return data


def _to_checksum(value: str, *, field_name: str) -> str:
    try:
        return Web3.to_checksum_address(value)
    except Exception as exc:  # web3 raises ValueError/TypeError for malformed inputs
        raise ConfigurationError(f"Invalid address for {field_name}: {value}") from exc


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a blockchain network."""

    name: str
    chain_id: int
    rpc_url: Optional[str] = None
    rpc_fallbacks: Tuple[str, ...] = ()
    bridge_chain_id: Optional[int] = None

    @property
    def destination_id(self) -> int:
        """Identifier passed to the bridge contract as ``destChainId``."""
        return self.bridge_chain_id if self.bridge_chain_id is not None else self.chain_id


@dataclass(frozen=True)
class RpcSettings:
    """Endpoint probing parameters."""

    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    public_fallback_url: str = DEFAULT_PUBLIC_RPC_URL

    @property
    def request_timeout(self) -> float:
        return self.request_timeout_ms / 1000


@dataclass(frozen=True)
class GasSettings:
    """Fixed fee fallbacks and per-operation gas limit hints."""

    max_fee_gwei: int = 20
    max_priority_fee_gwei: int = 15
    gas_limit: int = 500_000
    fee_markup_percent: int = 125
    approval_gas_limit: int = 100_000
    wrapped_approval_gas_limit: int = 200_000
    deposit_gas_limit: int = 300_000
    wrapped_deposit_gas_limit: int = 350_000

    @property
    def fallback_max_fee_per_gas(self) -> int:
        return Web3.to_wei(self.max_fee_gwei, "gwei")

    @property
    def fallback_max_priority_fee_per_gas(self) -> int:
        return Web3.to_wei(self.max_priority_fee_gwei, "gwei")


@dataclass(frozen=True)
class TransactionSettings:
    """Receipt polling parameters."""

    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    receipt_poll_latency: float = DEFAULT_RECEIPT_POLL_LATENCY


@dataclass(frozen=True)
class DefaultsConfig:
    """Optional defaults used by the CLI when flags are omitted."""

    source_chain: Optional[str] = None
    dest_chain: Optional[str] = None
    asset: Optional[str] = None
    amount: Optional[str] = None


@dataclass(frozen=True)
class BridgeConfig:
    """Typed wrapper around the bridge configuration."""

    chains: Mapping[str, ChainConfig]
    bridge_contracts: Mapping[str, str]
    wrapped_tokens: Mapping[str, Mapping[str, str]]
    rpc: RpcSettings = RpcSettings()
    gas: GasSettings = GasSettings()
    transaction: TransactionSettings = TransactionSettings()
    defaults: DefaultsConfig = DefaultsConfig()
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def has_chain(self, name: Optional[str]) -> bool:
        return bool(name) and name in self.chains

    def chain(self, name: str) -> ChainConfig:
        """Return the chain named ``name`` or raise if it is unknown."""
        try:
            return self.chains[name]
        except KeyError:
            raise ConfigurationError(f"Unknown chain: {name}") from None

    def bridge_address(self, chain_name: str) -> str:
        """Return the bridge contract for ``chain_name`` or raise if none is configured."""
        address = self.bridge_contracts.get(chain_name)
        if not address:
            raise ConfigurationError(f"Missing bridge address for {chain_name}")
        return address

    def to_dict(self) -> Dict[str, Any]:
        """Return the original configuration mapping."""
        return dict(self.raw)


def _parse_chain(name: str, data: Any) -> ChainConfig:
    data = _require_mapping(data, f"chain {name}")
    _require_keys(data, ["chain_id"], f"chain {name}")

    fallbacks = data.get("rpc_fallbacks") or []
    if isinstance(fallbacks, str) or not isinstance(fallbacks, Iterable):
        raise ConfigurationError(f"chain {name} rpc_fallbacks must be a list of URLs")

    chain = ChainConfig(
        name=name,
        chain_id=int(data["chain_id"]),
        rpc_url=str(data["rpc_url"]) if data.get("rpc_url") else None,
        rpc_fallbacks=tuple(str(url) for url in fallbacks if url),
        bridge_chain_id=int(data["bridge_chain_id"]) if data.get("bridge_chain_id") is not None else None,
    )
    if chain.chain_id <= 0:
        raise ConfigurationError(f"chain {name} chain_id must be positive")
    if not 0 <= chain.destination_id <= MAX_BRIDGE_CHAIN_ID:
        raise ConfigurationError(
            f"chain {name} bridge id {chain.destination_id} does not fit uint16; set bridge_chain_id"
        )
    return chain


def _parse_wrapped_tokens(data: Any) -> Dict[str, Dict[str, str]]:
    data = _require_mapping(data, "wrapped_tokens")
    result: Dict[str, Dict[str, str]] = {}
    for symbol, per_chain in data.items():
        per_chain = _require_mapping(per_chain, f"wrapped token {symbol}")
        result[symbol] = {
            chain_name: _to_checksum(address, field_name=f"wrapped token {symbol} on {chain_name}")
            for chain_name, address in per_chain.items()
            if address
        }
    return result


def _parse_gas(data: Mapping[str, Any]) -> GasSettings:
    defaults = GasSettings()
    gas = GasSettings(
        **{
            name: int(data.get(name, getattr(defaults, name)))
            for name in GasSettings.__dataclass_fields__
        }
    )
    for name in GasSettings.__dataclass_fields__:
        if getattr(gas, name) < 0:
            raise ConfigurationError(f"gas.{name} must be non-negative")
    if gas.fee_markup_percent <= 0:
        raise ConfigurationError("gas.fee_markup_percent must be positive")
    return gas


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file contains invalid JSON: {path}") from exc


def parse_config(data: Mapping[str, Any]) -> BridgeConfig:
    """Validate a raw configuration mapping."""
    data = _require_mapping(data, "config")
    _require_keys(data, ["chains", "bridge_contracts"], "config")

    chains_data = _require_mapping(data["chains"], "chains")
    if not chains_data:
        raise ConfigurationError("chains cannot be empty")
    chains = {name: _parse_chain(name, value) for name, value in chains_data.items()}

    bridge_data = _require_mapping(data["bridge_contracts"], "bridge_contracts")
    bridge_contracts: Dict[str, str] = {}
    for chain_name, address in bridge_data.items():
        if chain_name not in chains:
            raise ConfigurationError(f"bridge_contracts references unknown chain {chain_name}")
        if address:
            bridge_contracts[chain_name] = _to_checksum(address, field_name=f"bridge contract on {chain_name}")

    wrapped_tokens = _parse_wrapped_tokens(data.get("wrapped_tokens", {}))

    rpc_data = _require_mapping(data.get("rpc", {}), "rpc")
    rpc = RpcSettings(
        request_timeout_ms=int(rpc_data.get("request_timeout_ms", DEFAULT_REQUEST_TIMEOUT_MS)),
        public_fallback_url=str(rpc_data.get("public_fallback_url", DEFAULT_PUBLIC_RPC_URL) or ""),
    )
    if rpc.request_timeout_ms <= 0:
        raise ConfigurationError("rpc.request_timeout_ms must be positive")

    gas = _parse_gas(_require_mapping(data.get("gas", {}), "gas"))

    tx_data = _require_mapping(data.get("transaction", {}), "transaction")
    transaction = TransactionSettings(
        receipt_timeout=float(tx_data.get("receipt_timeout", DEFAULT_RECEIPT_TIMEOUT)),
        receipt_poll_latency=float(tx_data.get("receipt_poll_latency", DEFAULT_RECEIPT_POLL_LATENCY)),
    )
    if transaction.receipt_timeout <= 0:
        raise ConfigurationError("transaction.receipt_timeout must be positive")

    defaults_data = _require_mapping(data.get("defaults", {}), "defaults")
    defaults = DefaultsConfig(
        source_chain=defaults_data.get("source_chain"),
        dest_chain=defaults_data.get("dest_chain"),
        asset=defaults_data.get("asset"),
        amount=str(defaults_data["amount"]) if defaults_data.get("amount") is not None else None,
    )

    return BridgeConfig(
        chains=chains,
        bridge_contracts=bridge_contracts,
        wrapped_tokens=wrapped_tokens,
        rpc=rpc,
        gas=gas,
        transaction=transaction,
        defaults=defaults,
        raw=data,
    )


def load_config(config_path: Optional[Path] = None) -> BridgeConfig:
    """Load and validate bridge configuration data."""
    if config_path is None:
        env_path = os.getenv(CONFIG_PATH_ENV)
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    return parse_config(_load_json(Path(config_path)))


__all__ = [
    "BridgeConfig",
    "ChainConfig",
    "DefaultsConfig",
    "GasSettings",
    "RpcSettings",
    "TransactionSettings",
    "load_config",
    "parse_config",
]

"""Configuration utilities for autobridge."""

from autobridge.exceptions import ConfigurationError

from .loader import (
    BridgeConfig,
    ChainConfig,
    DefaultsConfig,
    GasSettings,
    RpcSettings,
    TransactionSettings,
    load_config,
    parse_config,
)

__all__ = [
    "BridgeConfig",
    "ChainConfig",
    "ConfigurationError",
    "DefaultsConfig",
    "GasSettings",
    "RpcSettings",
    "TransactionSettings",
    "load_config",
    "parse_config",
]

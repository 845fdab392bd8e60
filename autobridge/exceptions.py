"""Exception hierarchy for autobridge transfers."""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class BridgeError(Exception):
    """Base exception for every failure raised by autobridge."""

    code = "BRIDGE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(BridgeError):
    """Raised when a transfer request is malformed. No network I/O has happened."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigurationError(BridgeError):
    """Raised when configuration data is invalid or missing."""

    code = "CONFIGURATION_ERROR"


class ConnectivityError(BridgeError):
    """Raised when no RPC endpoint of a chain answers the liveness probe."""

    code = "CONNECTIVITY_ERROR"

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        endpoints: Sequence[str] = (),
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.chain = chain
        self.endpoints = tuple(endpoints)


class InsufficientBalanceError(BridgeError):
    """Raised when the sender holds fewer tokens than requested."""

    code = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        requested: str,
        available: str,
        symbol: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        unit = f" {symbol}" if symbol else ""
        super().__init__(
            f"Insufficient balance. Need {requested}{unit}, has {available}{unit}",
            details,
        )
        self.requested = requested
        self.available = available
        self.symbol = symbol


class OnChainExecutionError(BridgeError):
    """Raised when a transaction is mined but its receipt reports failure."""

    code = "ONCHAIN_EXECUTION_FAILED"

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.tx_hash = tx_hash
        self.operation = operation


__all__ = [
    "BridgeError",
    "ConfigurationError",
    "ConnectivityError",
    "InsufficientBalanceError",
    "OnChainExecutionError",
    "ValidationError",
]

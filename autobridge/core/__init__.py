"""Core domain logic for autobridge."""

from .endpoints import ConnectionCache, EndpointResolver
from .executor import TransactionExecutor, TransactionReceipt
from .fees import FeeEstimator, FeeParameters, GasOverrides
from .transfer import (
    AssetKind,
    BridgeClient,
    TransferPlan,
    TransferRequest,
    classify_asset,
    send_token,
    validate_request,
)

__all__ = [
    "AssetKind",
    "BridgeClient",
    "ConnectionCache",
    "EndpointResolver",
    "FeeEstimator",
    "FeeParameters",
    "GasOverrides",
    "TransactionExecutor",
    "TransactionReceipt",
    "TransferPlan",
    "TransferRequest",
    "classify_asset",
    "send_token",
    "validate_request",
]

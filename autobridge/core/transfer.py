"""Bridge transfer orchestration.

A transfer runs as one linear sequence: validate the request, resolve the
source chain connection, derive sender and recipient, estimate fees, classify
the asset, run the token pre-checks, optionally approve, then deposit. Each
deposit is tried first with the referral-aware signature and, if the bridge
rejects it, once more with the legacy signature.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

import requests
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import TimeExhausted

from autobridge.config import BridgeConfig, ChainConfig
from autobridge.contracts import BRIDGE_ABI_FILE, load_contract_abi
from autobridge.core.endpoints import ConnectionCache, EndpointResolver, Web3Factory, default_web3_factory
from autobridge.core.executor import TransactionExecutor, TransactionReceipt
from autobridge.core.fees import FeeData, FeeEstimator, FeeParameters, GasOverrides, read_fee_data
from autobridge.core.tokens import (
    APPROVE_SIGNATURE,
    DEFAULT_DECIMALS,
    allowance_of,
    balance_of,
    decimals_of,
    format_units,
    get_contract,
    parse_decimal,
    parse_units,
)
from autobridge.core.utils import ZERO_ADDRESS, get_logger
from autobridge.exceptions import ConfigurationError, InsufficientBalanceError, ValidationError

LOGGER = get_logger("autobridge.transfer")

PRIVATE_KEY_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")
NATIVE_SELECTORS = ("native", "NATIVE")

WITH_REFERRAL = "with-referral"
LEGACY = "legacy"

NATIVE_DEPOSIT_SIGNATURE = "depositNative(uint16,address,address)"
NATIVE_DEPOSIT_LEGACY_SIGNATURE = "depositNative(uint16,address)"
TOKEN_DEPOSIT_SIGNATURE = "depositERC20(address,uint256,uint16,address,address)"
TOKEN_DEPOSIT_LEGACY_SIGNATURE = "depositERC20(address,uint256,uint16,address)"

TROUBLESHOOTING_CHECKLIST = (
    "1. Verify RPC endpoint is responsive",
    "2. Check token balance and approvals",
    "3. Confirm bridge contract is operational",
    "4. Validate chain configurations",
    "5. Check for bridge contract interface updates",
)

# Node rejections that a different call shape cannot fix.
_NON_RETRYABLE_MARKERS = (
    "insufficient funds",
    "nonce too low",
    "replacement transaction underpriced",
    "already known",
)


class AssetKind(Enum):
    NATIVE = "native"
    WRAPPED = "wrapped"
    ERC20 = "erc20"


@dataclass(frozen=True)
class ResolvedAsset:
    """Asset selector resolved against the source chain."""

    kind: AssetKind
    selector: str
    token_address: Optional[str] = None

    @property
    def symbol(self) -> Optional[str]:
        return self.selector if self.kind is AssetKind.WRAPPED else None


@dataclass(frozen=True)
class TransferRequest:
    """Caller supplied description of a single bridge transfer."""

    source_chain: str
    dest_chain: str
    asset: str
    amount: str
    private_key: str = field(repr=False)
    recipient: Optional[str] = None
    referral: Optional[str] = None
    gas: GasOverrides = field(default_factory=GasOverrides)


@dataclass(frozen=True)
class DepositCall:
    """One call shape of a bridge deposit."""

    variant: str
    signature: str
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class TransferPlan:
    """Everything needed to broadcast a transfer, gathered without broadcasting."""

    request: TransferRequest = field(repr=False)
    source: ChainConfig
    destination: ChainConfig
    sender: str
    recipient: str
    referral: str
    bridge_address: str
    asset: ResolvedAsset
    fees: FeeParameters
    amount: int
    decimals: int
    balance: Optional[int] = None
    allowance: Optional[int] = None
    web3: Optional[Web3] = field(default=None, repr=False, compare=False)
    account: Optional[LocalAccount] = field(default=None, repr=False, compare=False)

    @property
    def needs_approval(self) -> bool:
        if self.asset.kind is AssetKind.NATIVE:
            return False
        return (self.allowance or 0) < self.amount

    @property
    def approval_amount(self) -> int:
        # Twice the amount leaves headroom for the next transfer.
        return self.amount * 2

    @property
    def gas_limit_overridden(self) -> bool:
        return self.request.gas.gas_limit is not None


ExecutorFactory = Callable[[Web3, LocalAccount, ChainConfig], TransactionExecutor]


def validate_request(config: BridgeConfig, request: TransferRequest) -> None:
    """Reject malformed requests before any network I/O happens."""
    if not config.has_chain(request.source_chain) or not config.has_chain(request.dest_chain):
        raise ValidationError(
            f"Invalid chain configuration: {request.source_chain} -> {request.dest_chain}",
            field="chain",
            value=(request.source_chain, request.dest_chain),
        )
    if not isinstance(request.private_key, str) or not PRIVATE_KEY_PATTERN.fullmatch(request.private_key):
        raise ValidationError(
            "Invalid private key format (must be 64 hex chars with 0x prefix)",
            field="private_key",
        )

    parse_decimal(request.amount)

    for name in ("recipient", "referral"):
        value = getattr(request, name)
        if value and not Web3.is_address(value):
            raise ValidationError(f"Invalid {name} address: {value}", field=name, value=value)

    asset = request.asset
    if not asset or not (asset in NATIVE_SELECTORS or asset in config.wrapped_tokens or Web3.is_address(asset)):
        raise ValidationError(f"Unknown asset: {asset!r}", field="asset", value=asset)


def classify_asset(config: BridgeConfig, chain_name: str, selector: str) -> ResolvedAsset:
    """Map an asset selector to native coin, wrapped token or plain ERC20."""
    if selector in NATIVE_SELECTORS:
        return ResolvedAsset(kind=AssetKind.NATIVE, selector=selector)

    if selector in config.wrapped_tokens:
        address = config.wrapped_tokens[selector].get(chain_name)
        if not address:
            raise ConfigurationError(f"Missing {selector} address for {chain_name}")
        return ResolvedAsset(kind=AssetKind.WRAPPED, selector=selector, token_address=address)

    if Web3.is_address(selector):
        return ResolvedAsset(
            kind=AssetKind.ERC20,
            selector=selector,
            token_address=Web3.to_checksum_address(selector),
        )

    raise ValidationError(f"Unknown asset: {selector!r}", field="asset", value=selector)


def native_deposit_calls(dest_chain_id: int, recipient: str, referral: str) -> Tuple[DepositCall, DepositCall]:
    return (
        DepositCall(WITH_REFERRAL, NATIVE_DEPOSIT_SIGNATURE, (dest_chain_id, recipient, referral)),
        DepositCall(LEGACY, NATIVE_DEPOSIT_LEGACY_SIGNATURE, (dest_chain_id, recipient)),
    )


def token_deposit_calls(
    token_address: str,
    amount: int,
    dest_chain_id: int,
    recipient: str,
    referral: str,
) -> Tuple[DepositCall, DepositCall]:
    return (
        DepositCall(
            WITH_REFERRAL,
            TOKEN_DEPOSIT_SIGNATURE,
            (token_address, amount, dest_chain_id, recipient, referral),
        ),
        DepositCall(
            LEGACY,
            TOKEN_DEPOSIT_LEGACY_SIGNATURE,
            (token_address, amount, dest_chain_id, recipient),
        ),
    )


def is_fallback_eligible(exc: BaseException) -> bool:
    """Whether a failed referral-aware deposit may be retried with the legacy shape.

    Receipt timeouts are excluded because the transaction may still be mined.
    """
    if isinstance(exc, (TimeExhausted, requests.RequestException, ConnectionError, TimeoutError)):
        return False
    message = str(exc).lower()
    return not any(marker in message for marker in _NON_RETRYABLE_MARKERS)


@functools.lru_cache(maxsize=1)
def _bridge_abi() -> List[Any]:
    return load_contract_abi(BRIDGE_ABI_FILE)


class BridgeClient:
    """High-level orchestrator for native and ERC20 bridge deposits."""

    def __init__(
        self,
        config: BridgeConfig,
        *,
        cache: Optional[ConnectionCache] = None,
        web3_factory: Web3Factory = default_web3_factory,
        fee_reader: Callable[[Web3], FeeData] = read_fee_data,
        executor_factory: Optional[ExecutorFactory] = None,
    ) -> None:
        self.config = config
        self.cache = cache if cache is not None else ConnectionCache()
        self.resolver = EndpointResolver(config, self.cache, web3_factory=web3_factory)
        self.fee_estimator = FeeEstimator(config.gas, fee_reader=fee_reader)
        self._executor_factory = executor_factory or self._default_executor

    def prepare(self, request: TransferRequest) -> TransferPlan:
        """Run every pre-broadcast step and return the resulting plan."""
        validate_request(self.config, request)
        source = self.config.chain(request.source_chain)
        destination = self.config.chain(request.dest_chain)

        web3 = self.resolver.resolve(source.name)
        account: LocalAccount = Account.from_key(request.private_key)
        sender = account.address
        recipient = Web3.to_checksum_address(request.recipient) if request.recipient else sender
        referral = Web3.to_checksum_address(request.referral) if request.referral else ZERO_ADDRESS

        fees = self.fee_estimator.estimate(web3, request.gas)

        bridge_address = self.config.bridge_address(source.name)
        asset = classify_asset(self.config, source.name, request.asset)

        balance: Optional[int] = None
        allowance: Optional[int] = None
        if asset.kind is AssetKind.NATIVE:
            decimals = DEFAULT_DECIMALS
            amount = parse_units(request.amount, decimals)
        else:
            token_address = asset.token_address
            decimals = decimals_of(web3, token_address)
            amount = parse_units(request.amount, decimals)

            balance = balance_of(web3, token_address, sender)
            if balance < amount:
                raise InsufficientBalanceError(
                    requested=format_units(amount, decimals),
                    available=format_units(balance, decimals),
                    symbol=asset.symbol,
                    details={"token": token_address, "requested_units": amount, "available_units": balance},
                )
            allowance = allowance_of(web3, token_address, sender, bridge_address)

        return TransferPlan(
            request=request,
            source=source,
            destination=destination,
            sender=sender,
            recipient=recipient,
            referral=referral,
            bridge_address=bridge_address,
            asset=asset,
            fees=fees,
            amount=amount,
            decimals=decimals,
            balance=balance,
            allowance=allowance,
            web3=web3,
            account=account,
        )

    def transfer(self, request: TransferRequest) -> str:
        """Bridge the requested asset and return the confirmed deposit transaction hash."""
        LOGGER.info(
            "Starting bridge transfer source=%s dest=%s asset=%s amount=%s recipient=%s referral=%s",
            request.source_chain,
            request.dest_chain,
            request.asset,
            request.amount,
            request.recipient,
            request.referral,
        )
        try:
            plan = self.prepare(request)
            self.log_plan(plan)
            executor = self._executor_factory(plan.web3, plan.account, plan.source)
            if plan.asset.kind is AssetKind.NATIVE:
                receipt = self._deposit_native(plan, executor)
            else:
                receipt = self._deposit_token(plan, executor)
        except Exception as exc:
            self._log_failure(exc)
            raise

        LOGGER.info("Bridge transfer complete hash=%s gas_used=%s", receipt.tx_hash, receipt.gas_used)
        return receipt.tx_hash

    # ------------------------------------------------------------------
    # Deposit paths
    # ------------------------------------------------------------------
    def _deposit_native(self, plan: TransferPlan, executor: TransactionExecutor) -> TransactionReceipt:
        calls = native_deposit_calls(plan.destination.destination_id, plan.recipient, plan.referral)
        return self._submit_deposit(
            executor,
            self._bridge_contract(plan),
            calls,
            plan.fees,
            value=plan.amount,
            operation="nativeDeposit",
        )

    def _deposit_token(self, plan: TransferPlan, executor: TransactionExecutor) -> TransactionReceipt:
        gas = self.config.gas
        wrapped = plan.asset.kind is AssetKind.WRAPPED
        token_address = plan.asset.token_address

        if plan.needs_approval:
            LOGGER.info(
                "Allowance %s below required %s; approving %s for bridge=%s",
                plan.allowance,
                plan.amount,
                plan.approval_amount,
                plan.bridge_address,
            )
            executor.submit(
                get_contract(plan.web3, token_address),
                APPROVE_SIGNATURE,
                (plan.bridge_address, plan.approval_amount),
                self._hinted_fees(plan, gas.wrapped_approval_gas_limit if wrapped else gas.approval_gas_limit),
                operation="tokenApproval",
            )
        else:
            LOGGER.info("Existing allowance %s covers amount %s", plan.allowance, plan.amount)

        calls = token_deposit_calls(
            token_address,
            plan.amount,
            plan.destination.destination_id,
            plan.recipient,
            plan.referral,
        )
        return self._submit_deposit(
            executor,
            self._bridge_contract(plan),
            calls,
            self._hinted_fees(plan, gas.wrapped_deposit_gas_limit if wrapped else gas.deposit_gas_limit),
            operation="tokenBridgeTransfer",
        )

    def _submit_deposit(
        self,
        executor: TransactionExecutor,
        contract: Contract,
        calls: Tuple[DepositCall, DepositCall],
        fees: FeeParameters,
        *,
        value: int = 0,
        operation: str,
    ) -> TransactionReceipt:
        primary, legacy = calls
        try:
            return executor.submit(contract, primary.signature, primary.args, fees, value=value, operation=operation)
        except Exception as exc:
            if not is_fallback_eligible(exc):
                raise
            LOGGER.warning(
                "Deposit variant=%s failed operation=%s error=%s; retrying with variant=%s",
                primary.variant,
                operation,
                exc,
                legacy.variant,
            )
        return executor.submit(contract, legacy.signature, legacy.args, fees, value=value, operation=operation)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _hinted_fees(plan: TransferPlan, gas_limit_hint: int) -> FeeParameters:
        if plan.gas_limit_overridden:
            return plan.fees
        return plan.fees.with_gas_limit(gas_limit_hint)

    @staticmethod
    def _bridge_contract(plan: TransferPlan) -> Contract:
        return plan.web3.eth.contract(address=plan.bridge_address, abi=_bridge_abi())

    def _default_executor(self, web3: Web3, account: LocalAccount, chain: ChainConfig) -> TransactionExecutor:
        return TransactionExecutor(
            web3,
            account,
            chain_id=chain.chain_id,
            receipt_timeout=self.config.transaction.receipt_timeout,
            poll_latency=self.config.transaction.receipt_poll_latency,
        )

    @staticmethod
    def log_plan(plan: TransferPlan) -> None:
        LOGGER.info(
            "Prepared %s transfer %s -> %s sender=%s recipient=%s referral=%s bridge=%s",
            plan.asset.kind.value,
            plan.source.name,
            plan.destination.name,
            plan.sender,
            plan.recipient,
            plan.referral,
            plan.bridge_address,
        )
        LOGGER.info(
            "Amount %s (%s units, decimals=%s) token=%s",
            format_units(plan.amount, plan.decimals),
            plan.amount,
            plan.decimals,
            plan.asset.token_address,
        )
        if plan.asset.kind is not AssetKind.NATIVE:
            LOGGER.info(
                "Token balance=%s allowance=%s needs_approval=%s",
                format_units(plan.balance or 0, plan.decimals),
                plan.allowance,
                plan.needs_approval,
            )

    @staticmethod
    def _log_failure(exc: BaseException) -> None:
        LOGGER.error(
            "Bridge transfer failed error=%s message=%s code=%s troubleshooting=%s",
            type(exc).__name__,
            exc,
            getattr(exc, "code", None),
            " | ".join(TROUBLESHOOTING_CHECKLIST),
        )


def send_token(
    config: BridgeConfig,
    *,
    source_chain: str,
    dest_chain: str,
    asset: str,
    amount: str,
    private_key: str,
    recipient: Optional[str] = None,
    referral: Optional[str] = None,
    gas: Optional[GasOverrides] = None,
    cache: Optional[ConnectionCache] = None,
) -> str:
    """Run a single transfer with a default ``BridgeClient``."""
    client = BridgeClient(config, cache=cache)
    return client.transfer(
        TransferRequest(
            source_chain=source_chain,
            dest_chain=dest_chain,
            asset=asset,
            amount=amount,
            private_key=private_key,
            recipient=recipient,
            referral=referral,
            gas=gas or GasOverrides(),
        )
    )


__all__ = [
    "AssetKind",
    "BridgeClient",
    "DepositCall",
    "ResolvedAsset",
    "TransferPlan",
    "TransferRequest",
    "classify_asset",
    "is_fallback_eligible",
    "native_deposit_calls",
    "send_token",
    "token_deposit_calls",
    "validate_request",
]

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from web3 import Web3

from autobridge.config import BridgeConfig, parse_config
from autobridge.core.executor import TransactionReceipt
from autobridge.exceptions import OnChainExecutionError

TEST_KEY = "0x" + "11" * 32
BRIDGE = Web3.to_checksum_address("0x" + "b" * 40)
TOKEN = Web3.to_checksum_address("0x" + "c" * 40)
WETH = Web3.to_checksum_address("0x" + "d" * 40)
OTHER = Web3.to_checksum_address("0x" + "e" * 40)

SOURCE_CHAIN_ID = 17000
DEST_CHAIN_ID = 97


def config_data() -> dict[str, Any]:
    return {
        "chains": {
            "SOURCE": {
                "chain_id": SOURCE_CHAIN_ID,
                "rpc_url": "https://primary",
                "rpc_fallbacks": ["https://fallback"],
            },
            "DEST": {"chain_id": DEST_CHAIN_ID, "rpc_url": "https://dest"},
            "NOBRIDGE": {"chain_id": SOURCE_CHAIN_ID, "rpc_url": "https://nobridge"},
        },
        "bridge_contracts": {"SOURCE": BRIDGE.lower()},
        "wrapped_tokens": {"WETH": {"SOURCE": WETH.lower()}},
        "rpc": {"request_timeout_ms": 2500, "public_fallback_url": "https://public"},
        "defaults": {"source_chain": "SOURCE", "dest_chain": "DEST", "asset": "native", "amount": "0.5"},
    }


@pytest.fixture
def config() -> BridgeConfig:
    return parse_config(config_data())


class FakeCall:
    def __init__(self, result: Any = None, error: Exception | None = None) -> None:
        self._result = result
        self._error = error

    def call(self) -> Any:
        if self._error is not None:
            raise self._error
        return self._result


class FakeToken:
    def __init__(
        self,
        *,
        balance: int,
        allowance: int = 0,
        decimals: int | None = 18,
    ) -> None:
        self.balance = balance
        self.allowance = allowance
        self.decimals = decimals
        self.functions = SimpleNamespace(
            decimals=self._decimals,
            balanceOf=lambda owner: FakeCall(self.balance),
            allowance=lambda owner, spender: FakeCall(self.allowance),
        )

    def _decimals(self) -> FakeCall:
        if self.decimals is None:
            return FakeCall(error=RuntimeError("execution reverted"))
        return FakeCall(self.decimals)


class FakeEth:
    def __init__(self, chain_id: int, *, fail: bool = False) -> None:
        self._chain_id = chain_id
        self.fail = fail
        self.probes = 0
        self.contracts: dict[str, Any] = {}

    @property
    def block_number(self) -> int:
        self.probes += 1
        if self.fail:
            raise ConnectionError("endpoint down")
        return 1234

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def contract(self, address: str, abi: Any) -> Any:
        return self.contracts.setdefault(address, SimpleNamespace(address=address, abi=abi))


class FakeWeb3:
    def __init__(self, chain_id: int = SOURCE_CHAIN_ID, *, fail: bool = False) -> None:
        self.eth = FakeEth(chain_id, fail=fail)


class RecordingFactory:
    """web3_factory that hands out pre-built fakes and remembers every URL."""

    def __init__(self, web3s: dict[str, FakeWeb3] | None = None, default: FakeWeb3 | None = None) -> None:
        self.web3s = web3s or {}
        self.default = default
        self.calls: list[tuple[str, float]] = []

    def __call__(self, url: str, timeout: float) -> FakeWeb3:
        self.calls.append((url, timeout))
        if url in self.web3s:
            return self.web3s[url]
        if self.default is None:
            raise ConnectionError(f"no fake for {url}")
        return self.default


class FakeExecutor:
    """Records submissions; ``failures`` maps a function signature to the error it raises."""

    def __init__(self, failures: dict[str, Exception] | None = None) -> None:
        self.failures = failures or {}
        self.submissions: list[dict[str, Any]] = []

    def submit(self, contract, signature, args, fees, *, value=0, operation) -> TransactionReceipt:
        self.submissions.append(
            {
                "contract": contract,
                "signature": signature,
                "args": tuple(args),
                "fees": fees,
                "value": value,
                "operation": operation,
            }
        )
        error = self.failures.get(signature)
        if error is not None:
            raise error
        return TransactionReceipt(
            tx_hash=f"0x{len(self.submissions):064x}",
            status=1,
            gas_used=21000,
            block_number=10,
            operation=operation,
        )

    @property
    def signatures(self) -> list[str]:
        return [entry["signature"] for entry in self.submissions]


def reverted(operation: str = "deposit") -> OnChainExecutionError:
    return OnChainExecutionError("Transaction failed on-chain", tx_hash="0x01", operation=operation)


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


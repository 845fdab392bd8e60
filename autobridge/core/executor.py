"""Transaction submission and receipt handling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract

from autobridge.core.fees import FeeParameters
from autobridge.core.utils import get_logger, to_gwei
from autobridge.exceptions import OnChainExecutionError

LOGGER = get_logger("autobridge.executor")


@dataclass(frozen=True)
class TransactionReceipt:
    """Outcome of a mined transaction."""

    tx_hash: str
    status: int
    gas_used: int
    block_number: int
    operation: str

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class TransactionExecutor:
    """Sign, broadcast and confirm contract calls for a single account on one chain."""

    def __init__(
        self,
        web3: Web3,
        account: LocalAccount,
        *,
        chain_id: int,
        receipt_timeout: float,
        poll_latency: float,
    ) -> None:
        self.web3 = web3
        self.account = account
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.poll_latency = poll_latency

    def submit(
        self,
        contract: Contract,
        signature: str,
        args: Sequence[Any],
        fees: FeeParameters,
        *,
        value: int = 0,
        operation: str,
    ) -> TransactionReceipt:
        """Send ``signature(*args)`` on ``contract`` and wait until it is mined.

        Raises ``OnChainExecutionError`` when the receipt reports a revert.
        Errors from building, signing, broadcasting or waiting propagate as raised by web3.
        """
        function = contract.get_function_by_signature(signature)(*args)
        nonce = self.web3.eth.get_transaction_count(self.account.address, "pending")
        tx_params = {
            "from": self.account.address,
            "nonce": nonce,
            "chainId": self.chain_id,
            **fees.as_tx_params(),
        }
        # Non-payable functions refuse a value key.
        if value:
            tx_params["value"] = value
        tx = function.build_transaction(tx_params)

        signed = self.account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = Web3.to_hex(tx_hash)
        LOGGER.info(
            "Transaction submitted operation=%s hash=%s function=%s gas_limit=%s max_fee=%s gwei priority=%s gwei",
            operation,
            tx_hex,
            signature,
            fees.gas_limit,
            to_gwei(fees.max_fee_per_gas),
            to_gwei(fees.max_priority_fee_per_gas),
        )

        receipt = self.web3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=self.receipt_timeout,
            poll_latency=self.poll_latency,
        )
        result = TransactionReceipt(
            tx_hash=tx_hex,
            status=int(receipt["status"]),
            gas_used=int(receipt["gasUsed"]),
            block_number=int(receipt["blockNumber"]),
            operation=operation,
        )
        LOGGER.info(
            "Transaction mined operation=%s hash=%s status=%s block=%s gas_used=%s",
            operation,
            tx_hex,
            "success" if result.succeeded else "failed",
            result.block_number,
            result.gas_used,
        )

        if not result.succeeded:
            raise OnChainExecutionError(
                f"Transaction failed on-chain ({operation}): {tx_hex}",
                tx_hash=tx_hex,
                operation=operation,
                details={"block_number": result.block_number, "gas_used": result.gas_used},
            )
        return result


__all__ = ["TransactionExecutor", "TransactionReceipt"]

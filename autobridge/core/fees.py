"""EIP-1559 fee parameter estimation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

from web3 import Web3

from autobridge.config import GasSettings
from autobridge.core.utils import get_logger, scale, to_gwei

LOGGER = get_logger("autobridge.fees")


@dataclass(frozen=True)
class FeeData:
    """Live fee readings; ``None`` when the node does not report a value."""

    max_fee_per_gas: Optional[int]
    max_priority_fee_per_gas: Optional[int]


@dataclass(frozen=True)
class GasOverrides:
    """Caller supplied fee parameters; ``None`` keeps the estimated value."""

    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_limit: Optional[int] = None


@dataclass(frozen=True)
class FeeParameters:
    """Fee parameters attached to a single transaction."""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    gas_limit: int

    def with_gas_limit(self, gas_limit: int) -> "FeeParameters":
        return replace(self, gas_limit=gas_limit)

    def as_tx_params(self) -> Dict[str, int]:
        return {
            "gas": self.gas_limit,
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
        }


def read_fee_data(web3: Web3) -> FeeData:
    """Read the latest base fee and suggested tip.

    ``max_fee_per_gas`` follows the usual wallet rule of twice the base fee
    plus the tip.
    """
    priority_fee = int(web3.eth.max_priority_fee)
    base_fee = web3.eth.get_block("latest").get("baseFeePerGas")
    max_fee = int(base_fee) * 2 + priority_fee if base_fee is not None else None
    return FeeData(max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority_fee)


class FeeEstimator:
    """Derive fee parameters from live data with a markup, or fixed fallbacks."""

    def __init__(
        self,
        settings: GasSettings,
        *,
        fee_reader: Callable[[Web3], FeeData] = read_fee_data,
    ) -> None:
        self.settings = settings
        self._fee_reader = fee_reader

    def fallback(self) -> FeeParameters:
        """Fixed parameters used when live fee data cannot be read; overrides do not apply."""
        return FeeParameters(
            max_fee_per_gas=self.settings.fallback_max_fee_per_gas,
            max_priority_fee_per_gas=self.settings.fallback_max_priority_fee_per_gas,
            gas_limit=self.settings.gas_limit,
        )

    def estimate(self, web3: Web3, overrides: Optional[GasOverrides] = None) -> FeeParameters:
        """Return fee parameters for the next transaction. Never raises on fee read failures."""
        overrides = overrides or GasOverrides()
        try:
            live = self._fee_reader(web3)
        except Exception as exc:
            LOGGER.warning("Failed to get dynamic gas params, using defaults error=%s", exc)
            return self.fallback()

        params = FeeParameters(
            max_fee_per_gas=_pick(
                overrides.max_fee_per_gas,
                self._marked_up(live.max_fee_per_gas),
                self.settings.fallback_max_fee_per_gas,
            ),
            max_priority_fee_per_gas=_pick(
                overrides.max_priority_fee_per_gas,
                self._marked_up(live.max_priority_fee_per_gas),
                self.settings.fallback_max_priority_fee_per_gas,
            ),
            gas_limit=_pick(overrides.gas_limit, self.settings.gas_limit),
        )
        LOGGER.info(
            "Calculated gas parameters max_fee=%s gwei priority=%s gwei gas_limit=%s",
            to_gwei(params.max_fee_per_gas),
            to_gwei(params.max_priority_fee_per_gas),
            params.gas_limit,
        )
        return params

    def _marked_up(self, value: Optional[int]) -> Optional[int]:
        # A zero reading is treated like a missing one.
        if not value:
            return None
        return scale(value, self.settings.fee_markup_percent, 100) or None


def _pick(*candidates: Optional[int]) -> int:
    for candidate in candidates:
        if candidate is not None:
            return int(candidate)
    raise ValueError("no fee value available")


__all__ = ["FeeData", "FeeEstimator", "FeeParameters", "GasOverrides", "read_fee_data"]

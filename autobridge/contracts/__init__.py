"""Contract ABIs shipped with autobridge."""

from importlib import resources
from typing import Any, List
import json

BRIDGE_ABI_FILE = "union_bridge.json"


def load_contract_abi(filename: str) -> List[Any]:
    """Load an ABI JSON file from the contracts package."""
    with resources.files(__package__).joinpath(filename).open("r", encoding="utf-8") as fh:
        return json.load(fh)


__all__ = ["BRIDGE_ABI_FILE", "load_contract_abi"]

from __future__ import annotations

import json
from pathlib import Path

import pytest
from web3 import Web3

from autobridge.config import ConfigurationError, load_config, parse_config
from conftest import BRIDGE, WETH, config_data


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_config_from_file(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, config_data()))

    source = config.chain("SOURCE")
    assert source.chain_id == 17000
    assert source.rpc_fallbacks == ("https://fallback",)
    assert source.destination_id == 17000
    assert config.bridge_address("SOURCE") == BRIDGE
    assert config.wrapped_tokens["WETH"]["SOURCE"] == WETH
    assert config.rpc.request_timeout == 2.5
    assert config.defaults.amount == "0.5"


def test_load_config_reads_path_from_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("AUTOBRIDGE_CONFIG", str(_write(tmp_path, config_data())))

    assert load_config().has_chain("DEST")


def test_defaults_for_optional_sections() -> None:
    data = config_data()
    del data["rpc"]

    config = parse_config(data)

    assert config.rpc.request_timeout_ms == 10_000
    assert config.rpc.public_fallback_url == "https://ethereum-sepolia.publicnode.com"
    assert config.gas.gas_limit == 500_000
    assert config.gas.fallback_max_fee_per_gas == Web3.to_wei(20, "gwei")
    assert config.gas.fallback_max_priority_fee_per_gas == Web3.to_wei(15, "gwei")
    assert config.transaction.receipt_timeout == 180.0


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path / "missing.json")


def test_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="invalid JSON"):
        load_config(path)


def test_missing_required_sections() -> None:
    with pytest.raises(ConfigurationError, match="bridge_contracts"):
        parse_config({"chains": config_data()["chains"]})


def test_invalid_bridge_address() -> None:
    data = config_data()
    data["bridge_contracts"]["SOURCE"] = "0x1234"

    with pytest.raises(ConfigurationError, match="bridge contract on SOURCE"):
        parse_config(data)


def test_bridge_contract_for_unknown_chain() -> None:
    data = config_data()
    data["bridge_contracts"]["ELSEWHERE"] = BRIDGE

    with pytest.raises(ConfigurationError, match="unknown chain ELSEWHERE"):
        parse_config(data)


def test_chain_id_too_large_for_bridge_needs_explicit_id() -> None:
    data = config_data()
    data["chains"]["DEST"]["chain_id"] = 11155111

    with pytest.raises(ConfigurationError, match="uint16"):
        parse_config(data)

    data["chains"]["DEST"]["bridge_chain_id"] = 40161
    assert parse_config(data).chain("DEST").destination_id == 40161


def test_missing_bridge_address_lookup(config) -> None:
    with pytest.raises(ConfigurationError, match="Missing bridge address for DEST"):
        config.bridge_address("DEST")


def test_repository_config_is_valid() -> None:
    config = load_config(Path(__file__).resolve().parent.parent / "config.json")

    assert config.has_chain(config.defaults.source_chain)
    assert config.has_chain(config.defaults.dest_chain)

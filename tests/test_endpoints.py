from __future__ import annotations

import socket
import threading
import time

import pytest

from autobridge.config import parse_config
from autobridge.core.endpoints import ConnectionCache, EndpointResolver, default_web3_factory
from autobridge.exceptions import ConfigurationError, ConnectivityError
from conftest import DEST_CHAIN_ID, SOURCE_CHAIN_ID, FakeWeb3, RecordingFactory, config_data


def test_candidate_urls_follow_priority_and_drop_empty_entries() -> None:
    data = config_data()
    data["chains"]["SOURCE"]["rpc_fallbacks"] = ["", "https://fallback", None]
    resolver = EndpointResolver(parse_config(data), ConnectionCache())

    assert resolver.candidate_urls("SOURCE") == ["https://primary", "https://fallback", "https://public"]


def test_failing_primary_falls_back_and_caches(config) -> None:
    primary = FakeWeb3(fail=True)
    fallback = FakeWeb3()
    factory = RecordingFactory({"https://primary": primary, "https://fallback": fallback})
    cache = ConnectionCache()
    resolver = EndpointResolver(config, cache, web3_factory=factory)

    assert resolver.resolve("SOURCE") is fallback
    assert "SOURCE" in cache
    assert [url for url, _ in factory.calls] == ["https://primary", "https://fallback"]
    assert all(timeout == 2.5 for _, timeout in factory.calls)

    assert resolver.resolve("SOURCE") is fallback
    assert len(factory.calls) == 2
    assert fallback.eth.probes == 1


def test_endpoint_on_wrong_chain_is_skipped(config) -> None:
    wrong_chain = FakeWeb3(chain_id=DEST_CHAIN_ID)
    fallback = FakeWeb3(chain_id=SOURCE_CHAIN_ID)
    factory = RecordingFactory({"https://primary": wrong_chain, "https://fallback": fallback})
    resolver = EndpointResolver(config, ConnectionCache(), web3_factory=factory)

    assert resolver.resolve("SOURCE") is fallback


def test_public_default_is_last_resort(config) -> None:
    public = FakeWeb3()
    factory = RecordingFactory({"https://public": public})
    resolver = EndpointResolver(config, ConnectionCache(), web3_factory=factory)

    assert resolver.resolve("SOURCE") is public


def test_all_endpoints_failing_raises_connectivity_error(config) -> None:
    factory = RecordingFactory(default=FakeWeb3(fail=True))
    cache = ConnectionCache()
    resolver = EndpointResolver(config, cache, web3_factory=factory)

    with pytest.raises(ConnectivityError) as excinfo:
        resolver.resolve("SOURCE")

    err = excinfo.value
    assert "SOURCE" in str(err)
    assert err.chain == "SOURCE"
    assert err.endpoints == ("https://primary", "https://fallback", "https://public")
    assert len(cache) == 0


def test_cache_is_shared_between_resolvers(config) -> None:
    cache = ConnectionCache()
    first = RecordingFactory(default=FakeWeb3())
    second = RecordingFactory(default=FakeWeb3())

    web3 = EndpointResolver(config, cache, web3_factory=first).resolve("SOURCE")

    assert EndpointResolver(config, cache, web3_factory=second).resolve("SOURCE") is web3
    assert second.calls == []


def test_cache_keeps_first_connection() -> None:
    cache = ConnectionCache()
    first, second = FakeWeb3(), FakeWeb3()

    assert cache.store("SOURCE", first) is first
    assert cache.store("SOURCE", second) is first
    assert cache.get("SOURCE") is first
    assert cache.get("DEST") is None


def test_unknown_chain_is_rejected(config) -> None:
    resolver = EndpointResolver(config, ConnectionCache(), web3_factory=RecordingFactory())

    with pytest.raises(ConfigurationError):
        resolver.resolve("MISSING")


class SilentServer:
    """TCP listener that accepts connections and never answers."""

    def __init__(self) -> None:
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.sock.settimeout(0.1)
        self.accepted = []
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def url(self) -> str:
        host, port = self.sock.getsockname()
        return f"http://{host}:{port}"

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            self.accepted.append(conn)

    def close(self) -> None:
        self._stop.set()
        self._thread.join()
        for conn in self.accepted:
            conn.close()
        self.sock.close()


@pytest.fixture
def silent_server():
    server = SilentServer()
    yield server
    server.close()


def test_default_factory_disables_provider_retries() -> None:
    web3 = default_web3_factory("http://127.0.0.1:1", 1.5)

    assert web3.provider.exception_retry_configuration is None
    assert dict(web3.provider.get_request_kwargs())["timeout"] == 1.5


def test_silent_endpoint_is_abandoned_after_one_timeout(silent_server) -> None:
    data = config_data()
    data["chains"]["SOURCE"]["rpc_url"] = silent_server.url
    data["chains"]["SOURCE"]["rpc_fallbacks"] = []
    data["rpc"] = {"request_timeout_ms": 300, "public_fallback_url": ""}
    resolver = EndpointResolver(parse_config(data), ConnectionCache())

    started = time.monotonic()
    with pytest.raises(ConnectivityError):
        resolver.resolve("SOURCE")
    elapsed = time.monotonic() - started

    assert elapsed < 1.5
    assert len(silent_server.accepted) == 1

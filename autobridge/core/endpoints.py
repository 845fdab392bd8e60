"""RPC endpoint selection and the per-process connection cache."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from web3 import Web3

from autobridge.config import BridgeConfig
from autobridge.core.utils import get_logger, probe_web3
from autobridge.exceptions import ConnectivityError

LOGGER = get_logger("autobridge.endpoints")

Web3Factory = Callable[[str, float], Web3]


def default_web3_factory(url: str, timeout: float) -> Web3:
    """Build an HTTP-backed ``Web3`` whose requests give up after ``timeout`` seconds."""
    # One request per probe; the candidate list is the only retry.
    return Web3(
        Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}, exception_retry_configuration=None)
    )


class ConnectionCache:
    """Process-scoped mapping of chain name to a live ``Web3`` connection.

    The cache starts empty, is filled lazily by :class:`EndpointResolver` and
    is never evicted or refreshed. Create one per process and hand it to every
    resolver that should share connections.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, Web3] = {}

    def get(self, chain: str) -> Optional[Web3]:
        return self._connections.get(chain)

    def store(self, chain: str, web3: Web3) -> Web3:
        """Cache ``web3`` for ``chain`` unless a connection is already held; return the held one."""
        return self._connections.setdefault(chain, web3)

    def __contains__(self, chain: object) -> bool:
        return chain in self._connections

    def __len__(self) -> int:
        return len(self._connections)


class EndpointResolver:
    """Pick the first responsive RPC endpoint of a chain and remember it."""

    def __init__(
        self,
        config: BridgeConfig,
        cache: ConnectionCache,
        *,
        web3_factory: Web3Factory = default_web3_factory,
    ) -> None:
        self.config = config
        self.cache = cache
        self._web3_factory = web3_factory

    def candidate_urls(self, chain: str) -> List[str]:
        chain_config = self.config.chain(chain)
        endpoints = [
            chain_config.rpc_url,
            *chain_config.rpc_fallbacks,
            self.config.rpc.public_fallback_url,
        ]
        return [url for url in endpoints if url]

    def resolve(self, chain: str) -> Web3:
        """Return the cached connection for ``chain`` or probe candidates in priority order."""
        cached = self.cache.get(chain)
        if cached is not None:
            return cached

        chain_config = self.config.chain(chain)
        timeout = self.config.rpc.request_timeout
        endpoints = self.candidate_urls(chain)

        for url in endpoints:
            try:
                web3 = self._web3_factory(url, timeout)
                block_number = probe_web3(web3, expected_chain_id=chain_config.chain_id)
            except Exception as exc:
                LOGGER.info("RPC endpoint failed chain=%s url=%s error=%s", chain, url, exc)
                continue

            LOGGER.info("Connected to RPC chain=%s url=%s block=%s", chain, url, block_number)
            return self.cache.store(chain, web3)

        raise ConnectivityError(
            f"All RPC endpoints failed for {chain}",
            chain=chain,
            endpoints=endpoints,
        )


__all__ = ["ConnectionCache", "EndpointResolver", "Web3Factory", "default_web3_factory"]

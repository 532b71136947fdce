import logging
from typing import Callable, Iterable, Optional

import aiohttp
from colorama import Fore, Style
from web3 import AsyncWeb3
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

from .errors import ConfigurationError, ConnectivityError

logger = logging.getLogger(__name__)


def make_client(url: str, timeout: float) -> AsyncWeb3:
    """Async web3 client for one endpoint, with POA extraData support"""
    provider = AsyncHTTPProvider(url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)})
    web3 = AsyncWeb3(provider)
    web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return web3


class EndpointPool:
    """Ordered candidate RPC URLs; at most one is active at a time"""

    def __init__(self, urls: Iterable[str]):
        valid = []
        for url in urls:
            url = (url or "").strip()
            if url.startswith(("http://", "https://")):
                valid.append(url)
            else:
                logger.warning(f"⚠️  Ignoring invalid RPC URL: {url!r}")
        if not valid:
            raise ConfigurationError("No valid RPC URL configured")
        self.urls = tuple(valid)
        self.active_index: Optional[int] = None

    def __len__(self):
        return len(self.urls)

    @property
    def active_url(self) -> Optional[str]:
        if self.active_index is None:
            return None
        return self.urls[self.active_index]

    def failover_order(self):
        """Indexes to try after the active endpoint, the active one last"""
        if self.active_index is None:
            return list(range(len(self.urls)))
        n = len(self.urls)
        return [(self.active_index + step) % n for step in range(1, n + 1)]


class RpcConnector:
    def __init__(
        self,
        pool: EndpointPool,
        chain_id: Optional[int] = None,
        request_timeout: float = 30,
        failover_threshold: int = 3,
        client_factory: Optional[Callable] = None,
    ):
        self.pool = pool
        self.expected_chain_id = chain_id
        self.chain_id: Optional[int] = None
        self.request_timeout = request_timeout
        self.failover_threshold = failover_threshold
        self._client_factory = client_factory or make_client
        self._web3 = None
        self._failures = 0

    @classmethod
    def from_config(cls, network, client_factory=None) -> "RpcConnector":
        return cls(
            EndpointPool(network.rpc_urls),
            chain_id=network.chain_id,
            request_timeout=network.request_timeout,
            failover_threshold=network.failover_threshold,
            client_factory=client_factory,
        )

    @property
    def web3(self):
        if self._web3 is None:
            raise ConnectivityError("RPC connector is not connected")
        return self._web3

    @property
    def active_url(self) -> Optional[str]:
        return self.pool.active_url

    async def _probe(self, index: int) -> bool:
        url = self.pool.urls[index]
        try:
            web3 = self._client_factory(url, self.request_timeout)
            block = await web3.eth.block_number
            chain_id = await web3.eth.chain_id
        except Exception as e:
            logger.warning(f"{Fore.RED}Failed to connect to {url}: {e}{Style.RESET_ALL}")
            return False

        if self.expected_chain_id is not None and chain_id != self.expected_chain_id:
            logger.warning(
                f"{Fore.RED}{url} serves chain {chain_id}, expected {self.expected_chain_id}{Style.RESET_ALL}"
            )
            return False

        logger.info(f"📶 Connected to RPC URL: {Fore.GREEN}{url}{Style.RESET_ALL} (block {block}, chain {chain_id})")
        self._web3 = web3
        self.chain_id = chain_id
        self.pool.active_index = index
        self._failures = 0
        return True

    async def connect(self):
        """Probe endpoints in order and keep the first one that answers"""
        for index in range(len(self.pool)):
            if await self._probe(index):
                return self._web3
        raise ConnectivityError("Unable to connect to any RPC URL.")

    async def reconnect(self) -> bool:
        """Re-probe the pool after repeated failures of the active endpoint"""
        previous = self.pool.active_url
        logger.warning(f"🔄 RPC {previous} keeps failing, probing the endpoint pool again...")
        for index in self.pool.failover_order():
            if await self._probe(index):
                if self.pool.active_url != previous:
                    logger.info(f"✅ Switched RPC from {previous} to {self.pool.active_url}")
                return True
        self._failures = 0
        logger.error(f"❌ No RPC endpoint answered, staying on {previous}")
        return False

    def record_success(self):
        self._failures = 0

    async def record_failure(self, exc: BaseException) -> bool:
        """Count a transport failure; returns True if a failover probe ran"""
        self._failures += 1
        logger.debug(f"RPC failure {self._failures}/{self.failover_threshold} on {self.active_url}: {exc}")
        if self._web3 is not None and self._failures >= self.failover_threshold:
            await self.reconnect()
            return True
        return False

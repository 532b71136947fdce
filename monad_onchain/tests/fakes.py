"""In-memory stand-ins for the async web3 client used by the tests."""

from collections import defaultdict
from typing import Callable, Dict, List, Optional

from eth_account import Account
from eth_account.typed_transactions import TypedTransaction
from eth_utils import keccak
from hexbytes import HexBytes

from monad_onchain.config import DelayRange, NetworkConfig, RetryPolicy, RunConfig
from monad_onchain.keys import Wallet
from monad_onchain.rpc import EndpointPool, RpcConnector
from monad_onchain.runtime import RunContext

CHAIN_ID = 10143

# hardhat's well-known development keys
TEST_KEYS = [
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80",
    "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3b1d0c2b4a9dbf9e",
]


def word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def make_wallets(count: int = 1) -> List[Wallet]:
    return [Wallet.from_key(key, index=idx) for idx, key in enumerate(TEST_KEYS[:count], start=1)]


class FakeEth:
    def __init__(self, chain_id: int = CHAIN_ID, block_number: int = 1000):
        self._chain_id = chain_id
        self._block_number = block_number
        self.default_balance = 10 ** 18
        self.balances: Dict[str, int] = {}
        self.pending_counts: Dict[str, int] = defaultdict(int)
        self.latest_counts: Dict[str, int] = defaultdict(int)
        self.used_nonces: Dict[str, set] = defaultdict(set)
        self.gas_price_wei = 50 * 10 ** 9
        self.base_fee: Optional[int] = 10 * 10 ** 9
        self.gas_estimate = 100000
        self.estimate_error: Optional[Exception] = None
        # selector (0x + 8 hex) -> int result or exception to raise
        self.call_results: Dict[str, object] = {}
        # exception, or callable(tx) returning one, raised by simulations
        self.simulate_error = None
        self.receipt_status: Callable[[dict], int] = lambda tx: 1
        # method name -> exceptions raised by the next calls, in order
        self.failures: Dict[str, List[Exception]] = defaultdict(list)
        # exceptions raised after a transaction was accepted, as if the response was lost
        self.lost_send_responses: List[Exception] = []
        self.calls: List[str] = []
        self.sent: List[dict] = []
        self.estimates: List[dict] = []
        self._by_hash: Dict[str, dict] = {}

    async def _enter(self, name: str):
        self.calls.append(name)
        if self.failures[name]:
            raise self.failures[name].pop(0)

    async def _value(self, name, value):
        await self._enter(name)
        return value

    @property
    def block_number(self):
        return self._value("block_number", self._block_number)

    @property
    def chain_id(self):
        return self._value("chain_id", self._chain_id)

    @property
    def gas_price(self):
        return self._value("gas_price", self.gas_price_wei)

    async def get_block(self, block_identifier):
        await self._enter("get_block")
        block = {"number": self._block_number}
        if self.base_fee is not None:
            block["baseFeePerGas"] = self.base_fee
        return block

    async def get_balance(self, address):
        await self._enter("get_balance")
        return self.balances.get(address, self.default_balance)

    async def get_transaction_count(self, address, block_identifier="latest"):
        await self._enter("get_transaction_count")
        if block_identifier == "pending":
            return self.pending_counts[address]
        return self.latest_counts[address]

    async def estimate_gas(self, tx):
        await self._enter("estimate_gas")
        self.estimates.append(dict(tx))
        if self.estimate_error is not None:
            raise self.estimate_error
        return self.gas_estimate

    async def call(self, tx, block_identifier=None):
        await self._enter("call")
        data = tx.get("data", "0x")
        result = self.call_results.get(data[:10])
        if result is None:
            if "from" in tx:
                error = self.simulate_error(tx) if callable(self.simulate_error) else self.simulate_error
                if error is not None:
                    raise error
            return b""
        if isinstance(result, Exception):
            raise result
        return word(result)

    async def send_raw_transaction(self, raw):
        await self._enter("send_raw_transaction")
        raw = HexBytes(raw)
        sender = Account.recover_transaction(raw)
        tx = TypedTransaction.from_bytes(raw).as_dict()
        tx_hash = HexBytes(keccak(raw))
        if tx_hash.to_0x_hex() in self._by_hash:
            raise ValueError({"code": -32000, "message": "already known"})
        nonce = tx["nonce"]
        if nonce in self.used_nonces[sender]:
            raise ValueError({"code": -32000, "message": "nonce too low"})
        self.used_nonces[sender].add(nonce)
        record = dict(tx, sender=sender, hash=tx_hash.to_0x_hex())
        self.sent.append(record)
        self._by_hash[record["hash"]] = record
        if self.lost_send_responses:
            raise self.lost_send_responses.pop(0)
        return tx_hash

    async def wait_for_transaction_receipt(self, tx_hash, timeout=120, poll_latency=0.1):
        await self._enter("wait_for_transaction_receipt")
        tx = self._by_hash[tx_hash]
        status = self.receipt_status(tx)
        if status == 1:
            self.latest_counts[tx["sender"]] = max(self.latest_counts[tx["sender"]], tx["nonce"] + 1)
        return {
            "status": status,
            "transactionHash": HexBytes(tx_hash),
            "contractAddress": "0x5FbDB2315678afecb367f032d93F642f64180aa3" if not tx.get("to") else None,
        }

    def nonces_sent_by(self, address) -> List[int]:
        return [tx["nonce"] for tx in self.sent if tx["sender"] == address]


class FakeWeb3:
    def __init__(self, eth: Optional[FakeEth] = None):
        self.eth = eth or FakeEth()


class FakeNetwork:
    """client_factory for RpcConnector: URL -> FakeWeb3, or an exception to raise"""

    def __init__(self, endpoints: Dict[str, object]):
        self.endpoints = endpoints
        self.created: List[str] = []

    def __call__(self, url, timeout):
        self.created.append(url)
        endpoint = self.endpoints[url]
        if isinstance(endpoint, Exception):
            raise endpoint
        return endpoint


class RecordingSleep:
    """Instant sleep that remembers the requested delays"""

    def __init__(self, cancel_after: Optional[int] = None, token=None):
        self.delays: List[float] = []
        self.cancel_after = cancel_after
        self.token = token

    async def __call__(self, seconds):
        self.delays.append(seconds)
        if self.cancel_after is not None and len(self.delays) >= self.cancel_after and self.token is not None:
            self.token.cancel()
            return False
        return True


def make_config(**overrides) -> RunConfig:
    values = dict(
        cycles=1,
        cycle_delay=DelayRange(1, 2),
        account_delay=DelayRange(3, 4),
        step_delay=DelayRange(5, 6),
        network=NetworkConfig(rpc_urls=("http://rpc-a.test",), chain_id=CHAIN_ID),
        retry=RetryPolicy(max_attempts=3, base_delay=1.0, revert_attempts=2),
    )
    values.update(overrides)
    return RunConfig(**values)


async def make_context(eth: Optional[FakeEth] = None, config: Optional[RunConfig] = None, sleep=None, ui=None):
    eth = eth or FakeEth()
    config = config or make_config()
    connector = RpcConnector(
        EndpointPool(config.network.rpc_urls),
        chain_id=config.network.chain_id,
        client_factory=lambda url, timeout: FakeWeb3(eth),
    )
    await connector.connect()
    return RunContext(config, connector, ui=ui, sleep=sleep or RecordingSleep())

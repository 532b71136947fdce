import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional

from colorama import Fore, Style
from eth_utils import keccak
from web3 import Web3

from .errors import NonceConflictError, TransactionAlreadyKnown
from .keys import Wallet

logger = logging.getLogger(__name__)

_tx_ids = itertools.count(1)


class SequencerState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SUBMITTING = "submitting"
    RECOVERING = "recovering"


class TxStatus(Enum):
    QUEUED = "queued"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PendingTransaction:
    tx_id: int
    wallet: Wallet
    description: str
    params: dict = field(repr=False)
    nonce: Optional[int] = None
    status: TxStatus = TxStatus.QUEUED
    tx_hash: Optional[str] = None


def to_hex_hash(value) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return Web3.to_hex(value)


class NonceSequencer:
    """Per-account nonce cache and strict in-order submission pipeline.

    Requests are queued and processed one at a time under a FIFO lock, so an
    account never has two transactions being signed/sent at once. The cached
    nonce only moves forward: after a send the network accepted, or during
    recovery from a "nonce already used" rejection.
    """

    def __init__(self, wallet: Wallet, connector, retry, chain_id: Optional[int] = None, max_recoveries: int = 3):
        self.wallet = wallet
        self.connector = connector
        self.retry = retry
        self.chain_id = chain_id
        self.max_recoveries = max_recoveries
        self.state = SequencerState.UNINITIALIZED
        self.queue: Deque[PendingTransaction] = deque()
        self.submitted_nonces: List[int] = []
        self._nonce: Optional[int] = None
        self._lock = asyncio.Lock()

    @property
    def nonce(self) -> Optional[int]:
        return self._nonce

    def _transition(self, state: SequencerState, record: Optional[PendingTransaction] = None, outcome: str = ""):
        previous = self.state
        self.state = state
        tx_part = f"Transaction [{record.tx_id}] " if record else ""
        logger.debug(
            f"{tx_part}{self.wallet.short} sequencer {previous.value} -> {state.value}"
            + (f": {outcome}" if outcome else "")
        )

    async def _initialize(self):
        address = self.wallet.address
        eth = lambda: self.connector.web3.eth  # noqa: E731
        pending = await self.retry.call(
            lambda: eth().get_transaction_count(address, "pending"), f"pending nonce {self.wallet.short}"
        )
        latest = await self.retry.call(
            lambda: eth().get_transaction_count(address, "latest"), f"latest nonce {self.wallet.short}"
        )
        if pending > latest:
            logger.warning(
                f"{Fore.YELLOW}⚠ Wallet {self.wallet} has {pending - latest} pending transaction(s), "
                f"continuing from nonce {pending}{Style.RESET_ALL}"
            )
        if self.chain_id is None:
            self.chain_id = self.connector.chain_id
        if self.chain_id is None:
            self.chain_id = await self.retry.call(lambda: eth().chain_id, "chain id")
        self._nonce = pending
        self._transition(SequencerState.READY, outcome=f"initial nonce {pending}")

    async def submit(self, params: dict, description: str = "transaction") -> PendingTransaction:
        """Queue a transaction and return once the network accepted it"""
        record = PendingTransaction(next(_tx_ids), self.wallet, description, dict(params))
        self.queue.append(record)
        logger.info(f"Transaction [{record.tx_id}] added to queue for {self.wallet.short}: {description}")
        try:
            async with self._lock:
                return await self._process(record)
        finally:
            self.queue.remove(record)

    async def _process(self, record: PendingTransaction) -> PendingTransaction:
        if self.state is SequencerState.UNINITIALIZED:
            await self._initialize()

        recoveries = 0
        while True:
            record.nonce = self._nonce
            self._transition(SequencerState.SUBMITTING, record, f"nonce {record.nonce}")
            tx = dict(record.params, nonce=record.nonce, chainId=self.chain_id)
            signed = self.wallet.sign_transaction(tx)
            try:
                tx_hash = await self.retry.call(
                    lambda: self.connector.web3.eth.send_raw_transaction(signed.raw_transaction),
                    f"send [{record.tx_id}] {record.description}",
                )
            except NonceConflictError as e:
                if recoveries >= self.max_recoveries:
                    record.status = TxStatus.FAILED
                    self._transition(SequencerState.READY, record, f"gave up after {recoveries} nonce recoveries")
                    raise NonceConflictError(
                        f"Transaction [{record.tx_id}] nonce conflict persisted after {recoveries} recoveries: {e}"
                    ) from e
                recoveries += 1
                self._transition(SequencerState.RECOVERING, record, str(e))
                self._nonce += 1
                logger.warning(
                    f"{Fore.YELLOW}⚠ Transaction [{record.tx_id}] nonce {record.nonce} already used, "
                    f"retrying with nonce {self._nonce}{Style.RESET_ALL}"
                )
                continue
            except TransactionAlreadyKnown:
                # an earlier attempt reached the node and only the response was lost
                tx_hash = keccak(signed.raw_transaction)
                logger.info(f"Transaction [{record.tx_id}] already known to the node, keeping nonce {record.nonce}")
            except Exception as e:
                record.status = TxStatus.FAILED
                self._transition(SequencerState.READY, record, f"failed: {e}")
                logger.error(f"Transaction [{record.tx_id}] failed for {self.wallet.short}: {e}")
                raise

            record.tx_hash = to_hex_hash(tx_hash)
            record.status = TxStatus.SUBMITTED
            self.submitted_nonces.append(record.nonce)
            self._nonce += 1
            self._transition(SequencerState.READY, record, f"submitted {record.tx_hash}")
            logger.info(
                f"Transaction [{record.tx_id}] {self.wallet.short} accepted with nonce {record.nonce}: "
                f"{Fore.MAGENTA}{record.tx_hash}{Style.RESET_ALL}"
            )
            return record

    def confirm(self, record: PendingTransaction, success: bool):
        record.status = TxStatus.CONFIRMED if success else TxStatus.FAILED
        logger.debug(f"Transaction [{record.tx_id}] {self.wallet.short} {record.status.value}")


class SequencerRegistry:
    """One sequencer per account address for the lifetime of a run"""

    def __init__(self, connector, retry, max_recoveries: int = 3):
        self.connector = connector
        self.retry = retry
        self.max_recoveries = max_recoveries
        self._sequencers: Dict[str, NonceSequencer] = {}

    def for_wallet(self, wallet: Wallet) -> NonceSequencer:
        key = wallet.address.lower()
        if key not in self._sequencers:
            self._sequencers[key] = NonceSequencer(
                wallet, self.connector, self.retry, max_recoveries=self.max_recoveries
            )
        return self._sequencers[key]

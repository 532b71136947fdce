"""Per-account nonce ordering and recovery."""

import asyncio
import unittest

import aiohttp

from monad_onchain.config import RetryPolicy
from monad_onchain.errors import InsufficientBalanceError, NonceConflictError
from monad_onchain.retry import RetryController
from monad_onchain.rpc import EndpointPool, RpcConnector
from monad_onchain.sequencer import NonceSequencer, SequencerRegistry, SequencerState, TxStatus

from .fakes import CHAIN_ID, FakeEth, FakeWeb3, RecordingSleep, make_wallets

RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def transfer(value: int = 1) -> dict:
    return {
        "to": RECIPIENT,
        "value": value,
        "data": "0x",
        "gas": 21000,
        "maxFeePerGas": 22 * 10 ** 9,
        "maxPriorityFeePerGas": 2 * 10 ** 9,
        "type": 2,
    }


class NonceSequencerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.eth = FakeEth()
        self.connector = RpcConnector(
            EndpointPool(["http://rpc.test"]), chain_id=CHAIN_ID, client_factory=lambda url, t: FakeWeb3(self.eth)
        )
        await self.connector.connect()
        self.retry = RetryController(RetryPolicy(), sleep=RecordingSleep(), connector=self.connector)
        self.wallet = make_wallets(1)[0]

    def sequencer(self, **kwargs) -> NonceSequencer:
        return NonceSequencer(self.wallet, self.connector, self.retry, **kwargs)

    async def test_starts_from_pending_count(self) -> None:
        self.eth.pending_counts[self.wallet.address] = 7
        self.eth.latest_counts[self.wallet.address] = 7
        seq = self.sequencer()
        first = await seq.submit(transfer(), "first")
        second = await seq.submit(transfer(), "second")
        self.assertEqual((first.nonce, second.nonce), (7, 8))
        self.assertEqual(seq.nonce, 9)
        self.assertEqual(first.status, TxStatus.SUBMITTED)
        self.assertTrue(first.tx_hash.startswith("0x"))
        self.assertEqual(self.eth.sent[0]["chainId"], CHAIN_ID)

    async def test_warns_about_pending_transactions(self) -> None:
        self.eth.pending_counts[self.wallet.address] = 5
        self.eth.latest_counts[self.wallet.address] = 3
        with self.assertLogs("monad_onchain.sequencer", level="WARNING") as logs:
            record = await self.sequencer().submit(transfer(), "after pending")
        self.assertEqual(record.nonce, 5)
        self.assertTrue(any("2 pending" in line for line in logs.output))

    async def test_concurrent_submits_stay_ordered(self) -> None:
        seq = self.sequencer()
        records = await asyncio.gather(*(seq.submit(transfer(i + 1), f"tx {i}") for i in range(5)))
        self.assertEqual([r.nonce for r in records], [0, 1, 2, 3, 4])
        self.assertEqual(self.eth.nonces_sent_by(self.wallet.address), [0, 1, 2, 3, 4])
        self.assertEqual([tx["value"] for tx in self.eth.sent], [1, 2, 3, 4, 5])
        self.assertEqual(len(seq.queue), 0)

    async def test_recovers_from_used_nonce(self) -> None:
        self.eth.used_nonces[self.wallet.address].update({0, 1})
        seq = self.sequencer()
        record = await seq.submit(transfer(), "stale nonce")
        self.assertEqual(record.nonce, 2)
        self.assertEqual(seq.nonce, 3)
        self.assertEqual(seq.state, SequencerState.READY)

    async def test_recovery_is_bounded(self) -> None:
        self.eth.used_nonces[self.wallet.address].update({0, 1, 2})
        seq = self.sequencer(max_recoveries=1)
        with self.assertRaises(NonceConflictError):
            await seq.submit(transfer(), "hopeless")
        self.assertEqual(seq.submitted_nonces, [])

    async def test_failed_send_keeps_nonce(self) -> None:
        self.eth.failures["send_raw_transaction"].append(ValueError("insufficient funds for gas * price + value"))
        seq = self.sequencer()
        with self.assertRaises(InsufficientBalanceError):
            await seq.submit(transfer(), "broke")
        self.assertEqual(seq.nonce, 0)
        record = await seq.submit(transfer(), "funded")
        self.assertEqual(record.nonce, 0)

    async def test_resend_after_lost_response_is_not_duplicated(self) -> None:
        self.eth.lost_send_responses.append(aiohttp.ServerDisconnectedError())
        seq = self.sequencer()
        record = await seq.submit(transfer(5), "transfer")
        self.assertEqual(len(self.eth.sent), 1)
        self.assertEqual(record.nonce, 0)
        self.assertEqual(record.tx_hash, self.eth.sent[0]["hash"])
        self.assertEqual(record.status, TxStatus.SUBMITTED)
        self.assertEqual(self.eth.calls.count("send_raw_transaction"), 2)
        follow_up = await seq.submit(transfer(), "next")
        self.assertEqual(follow_up.nonce, 1)

    async def test_nonces_only_increase(self) -> None:
        self.eth.used_nonces[self.wallet.address].add(1)
        seq = self.sequencer()
        for i in range(4):
            await seq.submit(transfer(), f"tx {i}")
        self.assertEqual(seq.submitted_nonces, sorted(set(seq.submitted_nonces)))
        self.assertEqual(seq.submitted_nonces, [0, 2, 3, 4])


class SequencerRegistryTests(unittest.TestCase):
    def test_one_sequencer_per_address(self) -> None:
        registry = SequencerRegistry(connector=None, retry=None)
        first, second = make_wallets(2)
        self.assertIs(registry.for_wallet(first), registry.for_wallet(first))
        self.assertIsNot(registry.for_wallet(first), registry.for_wallet(second))


if __name__ == "__main__":
    unittest.main()

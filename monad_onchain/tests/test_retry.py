"""Bounded retry with exponential backoff."""

import random
import unittest

from monad_onchain.config import RetryPolicy
from monad_onchain.errors import (
    InsufficientBalanceError,
    NonceConflictError,
    OperationCancelled,
    RateLimitError,
    RevertedError,
    UnknownError,
)
from monad_onchain.retry import RetryController, backoff_delay

from .fakes import RecordingSleep


class Flaky:
    """Raises the queued errors, then returns ``result``"""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class BackoffTests(unittest.TestCase):
    def test_delay_doubles(self) -> None:
        policy = RetryPolicy(base_delay=1.5)
        self.assertEqual([backoff_delay(policy, i) for i in (1, 2, 3)], [1.5, 3.0, 6.0])

    def test_jitter_stays_within_bounds(self) -> None:
        policy = RetryPolicy(base_delay=2.0, jitter=0.5)
        rng = random.Random(1)
        for _ in range(20):
            delay = backoff_delay(policy, 2, rng)
            self.assertTrue(4.0 <= delay <= 6.0)


class RetryControllerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.sleep = RecordingSleep()
        self.retry = RetryController(RetryPolicy(max_attempts=3, base_delay=1.0, revert_attempts=2), sleep=self.sleep)

    async def test_rate_limit_then_success(self) -> None:
        op = Flaky([ValueError("429 Too Many Requests"), ValueError("rate limit exceeded")])
        self.assertEqual(await self.retry.call(op, "balance"), "ok")
        self.assertEqual(op.calls, 3)
        self.assertEqual(self.sleep.delays, [1.0, 2.0])

    async def test_rate_limit_exhausted(self) -> None:
        op = Flaky([ValueError("429 Too Many Requests")] * 5)
        with self.assertRaises(RateLimitError):
            await self.retry.call(op, "balance")
        self.assertEqual(op.calls, 3)
        self.assertEqual(self.sleep.delays, [1.0, 2.0])

    async def test_transport_exhausted_is_unknown(self) -> None:
        op = Flaky([ConnectionResetError("reset")] * 5)
        with self.assertRaises(UnknownError):
            await self.retry.call(op, "block")
        self.assertEqual(op.calls, 3)

    async def test_revert_uses_smaller_budget(self) -> None:
        op = Flaky([ValueError("execution reverted")] * 5)
        with self.assertRaises(RevertedError):
            await self.retry.call(op, "simulate")
        self.assertEqual(op.calls, 2)
        self.assertEqual(self.sleep.delays, [1.0])

    async def test_non_retryable_errors_surface_at_once(self) -> None:
        cases = [
            (ValueError("nonce too low"), NonceConflictError),
            (ValueError("insufficient funds for gas"), InsufficientBalanceError),
            (KeyError("weird"), UnknownError),
        ]
        for exc, expected in cases:
            with self.subTest(expected=expected.__name__):
                op = Flaky([exc])
                with self.assertRaises(expected):
                    await self.retry.call(op, "send")
                self.assertEqual(op.calls, 1)
        self.assertEqual(self.sleep.delays, [])

    async def test_cancelled_backoff(self) -> None:
        async def refuse(seconds):
            return False

        retry = RetryController(RetryPolicy(), sleep=refuse)
        with self.assertRaises(OperationCancelled):
            await retry.call(Flaky([ValueError("429")]), "balance")


if __name__ == "__main__":
    unittest.main()

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from colorama import Fore, Style

from .config import RetryPolicy
from .errors import (
    ConfigurationError,
    ConnectivityError,
    ErrorKind,
    InsufficientBalanceError,
    NonceConflictError,
    OperationCancelled,
    RateLimitError,
    ReceiptTimeoutError,
    RevertedError,
    TransactionAlreadyKnown,
    UnknownError,
    classify_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SURFACED = {
    ErrorKind.RATE_LIMITED: RateLimitError,
    ErrorKind.TRANSPORT: UnknownError,
    ErrorKind.REVERTED: RevertedError,
    ErrorKind.NONCE_CONFLICT: NonceConflictError,
    ErrorKind.ALREADY_KNOWN: TransactionAlreadyKnown,
    ErrorKind.INSUFFICIENT_FUNDS: InsufficientBalanceError,
    ErrorKind.RECEIPT_TIMEOUT: ReceiptTimeoutError,
    ErrorKind.UNKNOWN: UnknownError,
}


def backoff_delay(policy: RetryPolicy, retry_index: int, rng: Optional[random.Random] = None) -> float:
    """Delay before the retry_index-th retry (1-based): base * 2^(i-1), plus optional jitter"""
    delay = policy.base_delay * 2 ** (retry_index - 1)
    if policy.jitter:
        delay += (rng or random).uniform(0, delay * policy.jitter)
    return delay


@dataclass
class RetryContext:
    description: str
    attempt: int = 0
    delay: float = 0.0
    last_kind: Optional[ErrorKind] = None


class RetryController:
    """Bounded retry with exponential backoff, driven by error classification.

    Rate limits and transport failures back off and retry up to
    ``max_attempts``; reverts get the smaller ``revert_attempts`` budget;
    nonce conflicts, already-known transactions, insufficient funds,
    receipt timeouts and unknown errors are surfaced at once as typed errors so the caller decides what happens next.
    """

    def __init__(self, policy: RetryPolicy, sleep: Optional[Callable] = None, connector=None, rng=None):
        self.policy = policy
        self._sleep = sleep or asyncio.sleep
        self.connector = connector
        self._rng = rng

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "rpc call",
        classify: Callable[[BaseException], ErrorKind] = classify_error,
        revert_attempts: Optional[int] = None,
    ) -> T:
        ctx = RetryContext(description)
        revert_limit = revert_attempts or self.policy.revert_attempts

        while True:
            ctx.attempt += 1
            try:
                result = await operation()
            except (ConnectivityError, ConfigurationError, OperationCancelled):
                raise
            except Exception as e:
                kind = classify(e)
                ctx.last_kind = kind

                if kind is ErrorKind.TRANSPORT and self.connector is not None:
                    await self.connector.record_failure(e)

                if kind in (ErrorKind.RATE_LIMITED, ErrorKind.TRANSPORT):
                    limit = self.policy.max_attempts
                elif kind is ErrorKind.REVERTED:
                    limit = revert_limit
                else:
                    limit = 0

                if ctx.attempt >= limit:
                    err = self._surface(kind, e, ctx)
                    if err is e:
                        raise
                    raise err from e

                ctx.delay = backoff_delay(self.policy, ctx.attempt, self._rng)
                logger.warning(
                    f"{Fore.YELLOW}⚠ {description}: {kind.value} "
                    f"(attempt {ctx.attempt}/{limit}), retrying in {ctx.delay:.1f}s: {e}{Style.RESET_ALL}"
                )
                if await self._sleep(ctx.delay) is False:
                    raise OperationCancelled(f"{description} cancelled during backoff")
            else:
                if self.connector is not None:
                    self.connector.record_success()
                return result

    def _surface(self, kind: ErrorKind, exc: Exception, ctx: RetryContext) -> Exception:
        error_cls = _SURFACED[kind]
        if isinstance(exc, error_cls):
            return exc
        if ctx.attempt > 1:
            return error_cls(f"{ctx.description} failed after {ctx.attempt} attempts: {exc}")
        return error_cls(f"{ctx.description} failed: {exc}")

import asyncio
import logging
import random
from typing import Callable, Optional, Union

from colorama import Fore, Style

from .config import DelayRange, RunConfig
from .errors import OperationCancelled
from .retry import RetryController
from .sequencer import SequencerRegistry
from .ui import UIBridge

logger = logging.getLogger(__name__)


class CancellationToken:
    """Shared stop flag checked at every cycle and every wait"""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self.cancelled:
            raise OperationCancelled("Run cancelled")

    async def sleep(self, seconds: float) -> bool:
        """Sleep unless cancelled; returns False when the wait was cut short"""
        if self.cancelled:
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


def format_delay(seconds: float) -> str:
    if seconds >= 60:
        return f"{seconds / 60:.1f} minutes"
    return f"{seconds:.0f} seconds"


class RunContext:
    """Everything one run shares: config, connection, UI, retry and sequencers.

    Built per run and thrown away afterwards, so two runs never share nonce
    caches or cancellation state.
    """

    def __init__(
        self,
        config: RunConfig,
        connector,
        ui: Optional[UIBridge] = None,
        cancel: Optional[CancellationToken] = None,
        sleep: Optional[Callable] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.connector = connector
        self.ui = ui or UIBridge(prompt_timeout=config.prompt_timeout)
        self.cancel = cancel or CancellationToken()
        self.rng = rng or random.Random()
        self._sleep = sleep or self.cancel.sleep
        self.retry = RetryController(config.retry, sleep=self._sleep, connector=connector, rng=self.rng)
        self.sequencers = SequencerRegistry(connector, self.retry, config.retry.max_nonce_recoveries)

    @property
    def web3(self):
        return self.connector.web3

    def explorer_link(self, tx_hash: str) -> str:
        return f"{self.config.network.explorer_url}{tx_hash}"

    async def wait(self, delay: Union[DelayRange, float], reason: str = "") -> bool:
        """Random (or fixed) pause; returns False if the run was cancelled"""
        if self.cancel.cancelled:
            return False
        seconds = delay.sample(self.rng) if isinstance(delay, DelayRange) else float(delay)
        message = f"⏳ Waiting {format_delay(seconds)}" + (f" {reason}" if reason else "") + "..."
        logger.info(f"{Fore.YELLOW}{message}{Style.RESET_ALL}")
        self.ui.update_panel(message)
        if await self._sleep(seconds) is False:
            return False
        return not self.cancel.cancelled

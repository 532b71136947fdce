import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from colorama import Fore, Style

from .config import DelayRange
from .errors import ConfigurationError, ConnectivityError, OperationCancelled
from .executor import ActionDescriptor, ActionExecutor, ActionOutcome
from .keys import Wallet

logger = logging.getLogger(__name__)


@dataclass
class Script:
    """A named sequence of actions run once per cycle per wallet"""

    key: str
    title: str
    steps: Sequence[ActionDescriptor]
    step_delay: Optional[DelayRange] = None

    async def run_cycle(self, context, executor: ActionExecutor, wallet: Wallet, cycle: int) -> ActionOutcome:
        state = {}
        for position, step in enumerate(self.steps):
            if position > 0:
                delay = self.step_delay or context.config.step_delay
                if not await context.wait(delay, f"before {step.name}"):
                    raise OperationCancelled(f"Cancelled before {step.name}")
            result = await executor.execute(step, wallet, cycle, state)
            if not result.ok:
                return result.outcome
        return ActionOutcome.SUCCESS


@dataclass
class RunSummary:
    accounts: int = 0
    cycles_attempted: int = 0
    cycles_succeeded: int = 0
    cycles_failed: int = 0
    cycles_skipped: int = 0
    cycles_interrupted: int = 0
    cancelled: bool = False

    def record(self, outcome: ActionOutcome):
        self.cycles_attempted += 1
        if outcome is ActionOutcome.SUCCESS:
            self.cycles_succeeded += 1
        elif outcome is ActionOutcome.SKIPPED:
            self.cycles_skipped += 1
        else:
            self.cycles_failed += 1

    def describe(self) -> str:
        text = (
            f"Completed {self.cycles_attempted} cycles for {self.accounts} accounts "
            f"({self.cycles_succeeded} successful, {self.cycles_failed} failed, {self.cycles_skipped} skipped)"
        )
        if self.cancelled:
            text += ", stopped early by cancellation"
            if self.cycles_interrupted:
                text += f" ({self.cycles_interrupted} cycle(s) interrupted)"
        return text


class Orchestrator:
    """Drives a Script over every wallet for N cycles with randomized pauses"""

    def __init__(self, context, executor: Optional[ActionExecutor] = None):
        self.context = context
        self.executor = executor or ActionExecutor(context)

    async def run(self, script: Script, wallets: Sequence[Wallet], cycles: Optional[int] = None) -> RunSummary:
        config = self.context.config
        cycles = cycles or config.cycles
        summary = RunSummary(accounts=len(wallets))
        order: List[Wallet] = list(wallets)
        if config.shuffle_accounts:
            self.context.rng.shuffle(order)

        self.context.ui.update_panel(f"🚀 {script.title}: {cycles} cycle(s) for {len(order)} account(s)")
        try:
            if config.parallel_accounts:
                await self._run_parallel(script, order, cycles, summary)
            else:
                for position, wallet in enumerate(order):
                    if self.context.cancel.cancelled:
                        break
                    await self._run_account(script, wallet, position, len(order), cycles, summary)
                    if position < len(order) - 1:
                        if not await self.context.wait(config.account_delay, "before next account"):
                            break
        finally:
            summary.cancelled = self.context.cancel.cancelled
            message = summary.describe()
            logger.info(f"{Fore.GREEN}🏁 {message}{Style.RESET_ALL}")
            self.context.ui.update_panel(message)
        return summary

    async def _run_parallel(self, script: Script, order: List[Wallet], cycles: int, summary: RunSummary):
        tasks = []
        for position, wallet in enumerate(order):
            if position > 0 and not await self.context.wait(self.context.config.account_delay, "before starting next account"):
                break
            tasks.append(
                asyncio.create_task(self._run_account(script, wallet, position, len(order), cycles, summary))
            )
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _run_account(self, script: Script, wallet: Wallet, position: int, total: int, cycles: int, summary: RunSummary):
        logger.info(f"{Fore.CYAN}{'=' * 20} Account {position + 1}/{total}: {wallet} {'=' * 20}{Style.RESET_ALL}")
        for cycle in range(1, cycles + 1):
            if self.context.cancel.cancelled:
                return
            self.context.ui.update_panel(f"{script.title} | account {position + 1}/{total} | cycle {cycle}/{cycles}")
            logger.info(f"🔄 Cycle {cycle}/{cycles} for wallet {wallet}")
            try:
                outcome = await script.run_cycle(self.context, self.executor, wallet, cycle)
            except (ConnectivityError, ConfigurationError):
                raise
            except OperationCancelled:
                logger.warning(f"⚠️  Cycle {cycle} for wallet {wallet} interrupted by cancellation")
                summary.cycles_interrupted += 1
                return
            except Exception as e:
                logger.error(f"{Fore.RED}❌ Cycle {cycle} for wallet {wallet} failed: {e}{Style.RESET_ALL}")
                outcome = ActionOutcome.FAILED
            summary.record(outcome)

            if cycle < cycles and not await self.context.wait(self.context.config.cycle_delay, "before next cycle"):
                return

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from colorama import Fore, Style
from web3 import Web3

from .abi import ERC20_ALLOWANCE, ERC20_APPROVE, ERC20_BALANCE_OF, decode_uint, encode_call
from .errors import (
    ConfigurationError,
    ConnectivityError,
    InsufficientBalanceError,
    OnchainError,
    OperationCancelled,
    RevertedError,
)
from .keys import Wallet

logger = logging.getLogger(__name__)


def resolve(value, ctx: "ActionContext"):
    """Descriptor fields may be constants or callables of the action context"""
    return value(ctx) if callable(value) else value


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


# ======================= DESCRIPTORS =======================

@dataclass(frozen=True)
class TxRequest:
    to: Optional[str]
    data: str = "0x"
    value: int = 0
    gas_limit: Optional[int] = None


@dataclass(frozen=True)
class BalanceCheck:
    minimum: Any
    token: Any = None
    label: str = "MON"


@dataclass(frozen=True)
class Approval:
    token: Any
    spender: Any
    amount: Any


@dataclass
class ActionDescriptor:
    """One protocol step: preconditions, optional approval and the tx itself.

    ``prepare`` runs first and may draw random amounts into ``ctx.state`` or
    return a string to skip the action with that reason.
    """

    name: str
    build: Callable
    checks: Tuple[BalanceCheck, ...] = ()
    approval: Optional[Approval] = None
    fallback_gas_limit: Optional[int] = None
    simulate: Optional[bool] = None
    prepare: Optional[Callable] = None
    on_success: Optional[Callable] = None


class ActionOutcome(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ActionResult:
    action: str
    outcome: ActionOutcome
    tx_hash: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is ActionOutcome.SUCCESS


@dataclass
class ActionContext:
    wallet: Wallet
    cycle: int
    state: dict
    run: Any = field(repr=False)

    @property
    def web3(self):
        return self.run.web3

    @property
    def rng(self):
        return self.run.rng

    async def native_balance(self) -> int:
        address = self.wallet.address
        return await self.run.retry.call(
            lambda: self.run.web3.eth.get_balance(address), f"balance {self.wallet.short}"
        )

    async def read_uint(self, to: str, data: str) -> int:
        """eth_call returning a single uint256"""
        to = Web3.to_checksum_address(to)
        raw = await self.run.retry.call(
            lambda: self.run.web3.eth.call({"to": to, "data": data}), f"call {to[:8]}..."
        )
        return decode_uint(raw)

    async def token_balance(self, token: str) -> int:
        return await self.read_uint(token, encode_call(ERC20_BALANCE_OF, [self.wallet.address]))


# ======================= EXECUTOR =======================

class ActionExecutor:
    """Runs one descriptor for one wallet: check, approve, estimate, simulate, submit, confirm"""

    def __init__(self, run):
        self.run = run
        self.config = run.config

    async def execute(self, action: ActionDescriptor, wallet: Wallet, cycle: int = 1, state: Optional[dict] = None) -> ActionResult:
        ctx = ActionContext(wallet, cycle, state if state is not None else {}, self.run)
        label = f"Wallet {wallet} {action.name}"
        try:
            if action.prepare is not None:
                reason = await _maybe_await(action.prepare(ctx))
                if reason:
                    return self._skipped(action, label, reason)

            for check in action.checks:
                shortfall = await self._check_balance(ctx, check)
                if shortfall:
                    return self._skipped(action, label, shortfall)

            if action.approval is not None:
                await self._ensure_allowance(ctx, action)

            request = await _maybe_await(action.build(ctx))
            params = await self._build_params(ctx, request, action.fallback_gas_limit)

            simulate = self.config.simulate_before_send if action.simulate is None else action.simulate
            if simulate:
                await self._simulate(ctx, params, action.name)

            receipt, tx_hash = await self._send(ctx, params, action.name)
            if receipt.get("status") != 1:
                logger.error(f"{Fore.RED}❌ {label} reverted on-chain: {self.run.explorer_link(tx_hash)}{Style.RESET_ALL}")
                return ActionResult(action.name, ActionOutcome.FAILED, tx_hash, "transaction reverted")

            logger.info(f"{Fore.GREEN}✅ {label} successful!{Style.RESET_ALL} ➜ {self.run.explorer_link(tx_hash)}")
            if action.on_success is not None:
                try:
                    await _maybe_await(action.on_success(ctx, receipt))
                except Exception as e:
                    logger.warning(f"⚠️  {label} post-processing failed: {e}")
            return ActionResult(action.name, ActionOutcome.SUCCESS, tx_hash)

        except (ConnectivityError, ConfigurationError, OperationCancelled):
            raise
        except InsufficientBalanceError as e:
            return self._skipped(action, label, str(e))
        except OnchainError as e:
            logger.error(f"{Fore.RED}❌ {label} failed: {e}{Style.RESET_ALL}")
            return ActionResult(action.name, ActionOutcome.FAILED, message=str(e))
        except Exception as e:
            logger.error(f"{Fore.RED}❌ {label} failed unexpectedly: {type(e).__name__}: {e}{Style.RESET_ALL}")
            return ActionResult(action.name, ActionOutcome.FAILED, message=str(e))

    def _skipped(self, action: ActionDescriptor, label: str, reason: str) -> ActionResult:
        logger.warning(f"{Fore.YELLOW}⏭  {label} skipped: {reason}{Style.RESET_ALL}")
        return ActionResult(action.name, ActionOutcome.SKIPPED, message=reason)

    async def _check_balance(self, ctx: ActionContext, check: BalanceCheck) -> Optional[str]:
        minimum = int(resolve(check.minimum, ctx))
        token = resolve(check.token, ctx)
        balance = await (ctx.token_balance(token) if token else ctx.native_balance())
        if balance < minimum:
            return (
                f"insufficient {check.label} balance: have {Web3.from_wei(balance, 'ether')}, "
                f"need {Web3.from_wei(minimum, 'ether')}"
            )
        return None

    async def _ensure_allowance(self, ctx: ActionContext, action: ActionDescriptor):
        approval = action.approval
        token = Web3.to_checksum_address(resolve(approval.token, ctx))
        spender = Web3.to_checksum_address(resolve(approval.spender, ctx))
        amount = int(resolve(approval.amount, ctx))

        current = await ctx.read_uint(token, encode_call(ERC20_ALLOWANCE, [ctx.wallet.address, spender]))
        if current >= amount:
            logger.debug(f"Allowance {current} of {token} already covers {amount}")
            return

        logger.info(f"🔓 Approving {token[:8]}... for {spender[:8]}...")
        request = TxRequest(to=token, data=encode_call(ERC20_APPROVE, [spender, amount]))
        params = await self._build_params(ctx, request, action.fallback_gas_limit)
        receipt, tx_hash = await self._send(ctx, params, f"approve for {action.name}")
        if receipt.get("status") != 1:
            raise RevertedError(f"Approval reverted: {self.run.explorer_link(tx_hash)}")
        logger.info(f"✅ Approval confirmed ➜ {self.run.explorer_link(tx_hash)}")

    async def _fee_params(self) -> dict:
        gas = self.config.gas
        retry = self.run.retry
        if gas.use_eip1559:
            block = await retry.call(lambda: self.run.web3.eth.get_block("latest"), "latest block")
            base_fee = block.get("baseFeePerGas")
            if base_fee is not None:
                priority = Web3.to_wei(gas.priority_fee_gwei, "gwei")
                return {
                    "maxFeePerGas": int(base_fee * gas.base_fee_multiplier) + priority,
                    "maxPriorityFeePerGas": priority,
                    "type": 2,
                }
            logger.warning("⚠️  Latest block has no baseFeePerGas, using legacy gas price")
        price = await retry.call(lambda: self.run.web3.eth.gas_price, "gas price")
        return {"gasPrice": int(price * gas.gas_price_multiplier)}

    async def _build_params(self, ctx: ActionContext, request: TxRequest, fallback_gas_limit: Optional[int]) -> dict:
        params = {"value": int(request.value), "data": request.data}
        if request.to is not None:
            params["to"] = Web3.to_checksum_address(request.to)
        params.update(await self._fee_params())

        if request.gas_limit:
            params["gas"] = int(request.gas_limit)
            return params

        fallback = fallback_gas_limit or self.config.gas.fallback_gas_limit
        estimate_tx = dict(params, **{"from": ctx.wallet.address})
        estimate_tx.pop("type", None)
        try:
            estimate = await self.run.retry.call(
                lambda: self.run.web3.eth.estimate_gas(estimate_tx), "estimate gas", revert_attempts=1
            )
            params["gas"] = int(estimate * self.config.gas.estimate_buffer)
            logger.debug(f"⛽ Estimated gas {estimate}, using {params['gas']}")
        except (ConnectivityError, ConfigurationError, OperationCancelled):
            raise
        except OnchainError as e:
            logger.warning(f"⚠️  Could not estimate gas: {e}. Using default gas limit: {fallback}")
            params["gas"] = fallback
        return params

    async def _simulate(self, ctx: ActionContext, params: dict, name: str):
        call_tx = {"from": ctx.wallet.address, "value": params["value"], "data": params["data"], "gas": params["gas"]}
        if "to" in params:
            call_tx["to"] = params["to"]
        await self.run.retry.call(lambda: self.run.web3.eth.call(call_tx), f"simulate {name}")
        logger.debug(f"Simulation of {name} passed for {ctx.wallet.short}")

    async def _send(self, ctx: ActionContext, params: dict, description: str):
        sequencer = self.run.sequencers.for_wallet(ctx.wallet)
        record = await sequencer.submit(params, description)
        logger.info(f"⏳ Waiting for confirmation: {self.run.explorer_link(record.tx_hash)}")
        timeout = self.config.receipt_timeout
        receipt = await self.run.retry.call(
            lambda: self.run.web3.eth.wait_for_transaction_receipt(record.tx_hash, timeout=timeout),
            f"receipt [{record.tx_id}]",
        )
        sequencer.confirm(record, receipt.get("status") == 1)
        return receipt, record.tx_hash

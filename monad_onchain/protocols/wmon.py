from dataclasses import dataclass

from web3 import Web3

from ..abi import encode_call
from ..executor import ActionDescriptor, BalanceCheck, TxRequest
from ..orchestrator import Script


@dataclass(frozen=True)
class WmonConfig:
    token: str = "0x760AfE86e5de5fa0Ee542fc7B7B713e1c5425701"
    min_amount: float = 0.01
    max_amount: float = 0.05
    gas_reserve: float = 0.01
    gas_limit: int = 150000


def build_script(cfg: WmonConfig = WmonConfig()) -> Script:
    def draw_amount(ctx):
        amount = round(ctx.rng.uniform(cfg.min_amount, cfg.max_amount), 4)
        ctx.state["wrap_amount"] = Web3.to_wei(amount, "ether")

    wrap = ActionDescriptor(
        name="wrap MON",
        prepare=draw_amount,
        checks=(
            BalanceCheck(minimum=lambda ctx: ctx.state["wrap_amount"] + Web3.to_wei(cfg.gas_reserve, "ether")),
        ),
        build=lambda ctx: TxRequest(to=cfg.token, data=encode_call("deposit()"), value=ctx.state["wrap_amount"]),
        fallback_gas_limit=cfg.gas_limit,
    )
    unwrap = ActionDescriptor(
        name="unwrap WMON",
        checks=(BalanceCheck(token=cfg.token, minimum=lambda ctx: ctx.state["wrap_amount"], label="WMON"),),
        build=lambda ctx: TxRequest(to=cfg.token, data=encode_call("withdraw(uint256)", [ctx.state["wrap_amount"]])),
        fallback_gas_limit=cfg.gas_limit,
    )
    return Script("wmon", "Wrap/Unwrap MON", (wrap, unwrap))

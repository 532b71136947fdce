from dataclasses import dataclass

from eth_account import Account
from web3 import Web3

from ..executor import ActionDescriptor, BalanceCheck, TxRequest
from ..orchestrator import Script


@dataclass(frozen=True)
class SendTxConfig:
    min_amount: float = 0.0001
    max_amount: float = 0.001
    gas_reserve: float = 0.001


def build_script(cfg: SendTxConfig = SendTxConfig()) -> Script:
    def draw_transfer(ctx):
        amount = round(ctx.rng.uniform(cfg.min_amount, cfg.max_amount), 6)
        ctx.state["amount"] = Web3.to_wei(amount, "ether")
        ctx.state["recipient"] = Account.create().address

    send = ActionDescriptor(
        name="send MON",
        prepare=draw_transfer,
        checks=(BalanceCheck(minimum=lambda ctx: ctx.state["amount"] + Web3.to_wei(cfg.gas_reserve, "ether")),),
        build=lambda ctx: TxRequest(to=ctx.state["recipient"], value=ctx.state["amount"], gas_limit=21000),
        # nothing to simulate for a plain transfer
        simulate=False,
    )
    return Script("sendtx", "Send TX to random address", (send,))

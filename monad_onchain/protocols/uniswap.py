import time
from dataclasses import dataclass, field
from typing import Dict

from web3 import Web3

from ..abi import encode_call
from ..executor import ActionDescriptor, Approval, BalanceCheck, TxRequest
from ..orchestrator import Script

SWAP_ETH_FOR_TOKENS = "swapExactETHForTokens(uint256,address[],address,uint256)"
SWAP_TOKENS_FOR_ETH = "swapExactTokensForETH(uint256,uint256,address[],address,uint256)"


def _default_tokens() -> Dict[str, str]:
    return {
        "DAK": "0x0F0BDEbF0F83cD1EE3974779Bcb7315f9808c714",
        "YAKI": "0xfe140e1dCe99Be9F4F15d657CD9b7BF622270C50",
        "CHOG": "0xE0590015A873bF326bd645c3E1266d4db41C4E6B",
        "USDC": "0xf817257fed379853cDe0fa4F97AB987181B1E5Ea",
    }


@dataclass(frozen=True)
class UniswapConfig:
    router: str = "0xCa810D095e90Daae6e867c19DF6D9A8C56db2c89"
    wmon: str = "0x760AfE86e5de5fa0Ee542fc7B7B713e1c5425701"
    tokens: Dict[str, str] = field(default_factory=_default_tokens)
    min_amount: float = 0.01
    max_amount: float = 0.05
    gas_reserve: float = 0.01
    deadline_seconds: int = 600
    gas_limit: int = 300000


def build_script(cfg: UniswapConfig = UniswapConfig()) -> Script:
    def deadline() -> int:
        return int(time.time()) + cfg.deadline_seconds

    def pick_swap(ctx):
        symbol = ctx.rng.choice(sorted(cfg.tokens))
        amount = round(ctx.rng.uniform(cfg.min_amount, cfg.max_amount), 4)
        ctx.state["symbol"] = symbol
        ctx.state["token"] = Web3.to_checksum_address(cfg.tokens[symbol])
        ctx.state["amount_in"] = Web3.to_wei(amount, "ether")

    def buy_tx(ctx):
        path = [Web3.to_checksum_address(cfg.wmon), ctx.state["token"]]
        data = encode_call(SWAP_ETH_FOR_TOKENS, [0, path, ctx.wallet.address, deadline()])
        return TxRequest(to=cfg.router, data=data, value=ctx.state["amount_in"])

    buy = ActionDescriptor(
        name="swap MON to token",
        prepare=pick_swap,
        checks=(BalanceCheck(minimum=lambda ctx: ctx.state["amount_in"] + Web3.to_wei(cfg.gas_reserve, "ether")),),
        build=buy_tx,
        fallback_gas_limit=cfg.gas_limit,
    )

    async def read_token_balance(ctx):
        balance = await ctx.token_balance(ctx.state["token"])
        if not balance:
            return f"no {ctx.state['symbol']} to swap back"
        ctx.state["token_amount"] = balance
        return None

    def sell_tx(ctx):
        path = [ctx.state["token"], Web3.to_checksum_address(cfg.wmon)]
        data = encode_call(SWAP_TOKENS_FOR_ETH, [ctx.state["token_amount"], 0, path, ctx.wallet.address, deadline()])
        return TxRequest(to=cfg.router, data=data)

    sell = ActionDescriptor(
        name="swap token to MON",
        prepare=read_token_balance,
        approval=Approval(
            token=lambda ctx: ctx.state["token"],
            spender=cfg.router,
            amount=lambda ctx: ctx.state["token_amount"],
        ),
        build=sell_tx,
        fallback_gas_limit=cfg.gas_limit,
    )
    return Script("uniswap", "Uniswap Swap", (buy, sell))

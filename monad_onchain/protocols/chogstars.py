from dataclasses import dataclass
from typing import Tuple

from web3 import Web3

from ..abi import encode_call
from ..executor import ActionDescriptor, BalanceCheck, TxRequest
from ..orchestrator import Script


@dataclass(frozen=True)
class ChogStarsConfig:
    contract: str = "0xb33D7138c53e516871977094B249C8f2ab89a4F4"
    # per-wallet target, drawn each cycle
    max_per_account: Tuple[int, int] = (1, 3)
    min_balance: float = 0.01
    gas_limit: int = 200000


def build_script(cfg: ChogStarsConfig = ChogStarsConfig()) -> Script:
    async def check_minted(ctx):
        minted = await ctx.read_uint(cfg.contract, encode_call("mintedCount(address)", [ctx.wallet.address]))
        target = ctx.rng.randint(*cfg.max_per_account)
        if minted >= target:
            return f"already minted {minted} NFT(s), target {target}"
        return None

    mint = ActionDescriptor(
        name="mint Lilchogstars",
        prepare=check_minted,
        checks=(BalanceCheck(minimum=Web3.to_wei(cfg.min_balance, "ether")),),
        build=lambda ctx: TxRequest(to=cfg.contract, data=encode_call("mint(uint256)", [1])),
        fallback_gas_limit=cfg.gas_limit,
    )
    return Script("chogstars", "Lilchogstars NFT", (mint,))

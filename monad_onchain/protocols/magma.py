from dataclasses import dataclass

from web3 import Web3

from ..executor import ActionDescriptor, BalanceCheck, TxRequest
from ..orchestrator import Script

# ======================= CONFIG SECTION =======================

@dataclass(frozen=True)
class MagmaConfig:
    contract: str = "0x2c9C959516e9AAEdB2C748224a41249202ca8BE7"
    stake_selector: str = "0xd5575982"
    unstake_selector: str = "0x6fed1ea7"
    min_stake: float = 0.01
    max_stake: float = 0.05
    # MON kept back for gas on top of the stake
    gas_reserve: float = 0.01
    stake_gas_limit: int = 500000
    unstake_gas_limit: int = 800000


def unstake_calldata(selector: str, amount: int) -> str:
    """Selector followed by the amount as one 32-byte word"""
    return selector + hex(amount)[2:].zfill(64)


def build_script(cfg: MagmaConfig = MagmaConfig()) -> Script:
    def draw_amount(ctx):
        amount = round(ctx.rng.uniform(cfg.min_stake, cfg.max_stake), 4)
        ctx.state["stake_amount"] = Web3.to_wei(amount, "ether")

    stake = ActionDescriptor(
        name="stake MON",
        prepare=draw_amount,
        checks=(
            BalanceCheck(
                minimum=lambda ctx: ctx.state["stake_amount"] + Web3.to_wei(cfg.gas_reserve, "ether"),
            ),
        ),
        build=lambda ctx: TxRequest(to=cfg.contract, data=cfg.stake_selector, value=ctx.state["stake_amount"]),
        fallback_gas_limit=cfg.stake_gas_limit,
    )

    def require_stake(ctx):
        if not ctx.state.get("stake_amount"):
            return "nothing staked in this cycle"
        return None

    unstake = ActionDescriptor(
        name="unstake gMON",
        prepare=require_stake,
        build=lambda ctx: TxRequest(
            to=cfg.contract, data=unstake_calldata(cfg.unstake_selector, ctx.state["stake_amount"])
        ),
        fallback_gas_limit=cfg.unstake_gas_limit,
    )
    return Script("magma", "Magma Staking", (stake, unstake))

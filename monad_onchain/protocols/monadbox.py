from dataclasses import dataclass

from web3 import Web3

from ..abi import encode_call
from ..executor import ActionDescriptor, BalanceCheck, TxRequest
from ..orchestrator import Script


@dataclass(frozen=True)
class MonadBoxConfig:
    contract: str = "0x0645565d6fdc37c9c7b7bd62cffb0126e8cffb61"
    min_balance: float = 0.01
    gas_limit: int = 200000


def build_script(cfg: MonadBoxConfig = MonadBoxConfig()) -> Script:
    open_box = ActionDescriptor(
        name="open box",
        checks=(BalanceCheck(minimum=Web3.to_wei(cfg.min_balance, "ether")),),
        build=lambda ctx: TxRequest(to=cfg.contract, data=encode_call("openBox()")),
        fallback_gas_limit=cfg.gas_limit,
    )
    return Script("monadbox", "MonadBox", (open_box,))

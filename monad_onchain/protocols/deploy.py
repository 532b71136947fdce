import asyncio
import logging
import random
import string
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from solcx import compile_source, install_solc
from web3 import Web3

from ..executor import ActionDescriptor, BalanceCheck, TxRequest
from ..orchestrator import Script

logger = logging.getLogger(__name__)

SOLC_VERSION = "0.8.17"

CONTRACTS = {
    "Counter": """
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract Counter {
    uint256 private count;

    function increment() public {
        count += 1;
    }

    function getCount() public view returns (uint256) {
        return count;
    }
}
""",
    "SimpleStorage": """
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract SimpleStorage {
    uint256 private value;

    function set(uint256 newValue) public {
        value = newValue;
    }

    function get() public view returns (uint256) {
        return value;
    }
}
""",
}


def compile_contract(source: str, name: str, solc_version: str = SOLC_VERSION) -> str:
    """Compile with solc and return the creation bytecode as 0x hex"""
    install_solc(solc_version)
    compiled = compile_source(source, output_values=["abi", "bin"], solc_version=solc_version)
    for key, interface in compiled.items():
        if key.split(":")[-1] == name:
            return "0x" + interface["bin"]
    raise ValueError(f"Contract {name} not found in compiler output")


def generate_random_name() -> str:
    """Label like CryptoVault123 for log lines"""
    adjectives = ["Smart", "Crypto", "Chain", "Block", "Digital", "Quantum", "Atomic", "Cosmic"]
    nouns = ["Vault", "Ledger", "Registry", "Oracle", "Nexus", "Portal", "Matrix", "Core"]
    digits = "".join(random.choices(string.digits, k=3))
    return f"{random.choice(adjectives)}{random.choice(nouns)}{digits}"


@dataclass(frozen=True)
class DeployConfig:
    min_balance: float = 0.02
    gas_limit: int = 1500000


def build_script(cfg: DeployConfig = DeployConfig(), compiler: Optional[Callable] = None) -> Script:
    compile_fn = compiler or compile_contract
    compiled: Dict[str, str] = {}

    async def compile_template(ctx):
        contract = ctx.rng.choice(sorted(CONTRACTS))
        ctx.state["contract"] = contract
        ctx.state["label"] = generate_random_name()
        if contract not in compiled:
            logger.info(f"⚙️ Compiling {contract} for {ctx.state['label']}")
            # solc runs as a subprocess; keep the event loop free
            compiled[contract] = await asyncio.to_thread(compile_fn, CONTRACTS[contract], contract)
        ctx.state["bytecode"] = compiled[contract]

    def report_address(ctx, receipt):
        logger.info(f"📍 {ctx.state['label']} ({ctx.state['contract']}) deployed at {receipt.get('contractAddress')}")

    deploy = ActionDescriptor(
        name="deploy contract",
        prepare=compile_template,
        checks=(BalanceCheck(minimum=Web3.to_wei(cfg.min_balance, "ether")),),
        build=lambda ctx: TxRequest(to=None, data=ctx.state["bytecode"]),
        fallback_gas_limit=cfg.gas_limit,
        on_success=report_address,
    )
    return Script("deploy", "Deploy Contract", (deploy,))

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from colorama import Fore, Style

from .config import RunConfig, load_config
from .errors import ConfigurationError, ConnectivityError
from .keys import load_wallets
from .orchestrator import Orchestrator, RunSummary
from .protocols import SCRIPTS
from .rpc import RpcConnector
from .runtime import CancellationToken, RunContext
from .ui import UIBridge, print_error, print_info, print_success, print_welcome_message, setup_logging

logger = logging.getLogger(__name__)


async def run_script(
    key: str,
    ui: Optional[UIBridge] = None,
    cycles: Optional[int] = None,
    config: Optional[RunConfig] = None,
    cancel: Optional[CancellationToken] = None,
    client_factory=None,
) -> RunSummary:
    """Run one registered script over every wallet in the key file"""
    config = config or load_config()
    ui = ui or UIBridge(prompt_timeout=config.prompt_timeout)
    if key not in SCRIPTS:
        raise ConfigurationError(f"Unknown script {key!r}, choose one of: {', '.join(SCRIPTS)}")
    script = SCRIPTS[key]

    if cycles is None:
        cycles = await ui.request_input(f"Enter the number of {script.title} cycles", "number", config.cycles)
    try:
        cycles = int(cycles)
    except (TypeError, ValueError):
        cycles = config.cycles
    if cycles < 1:
        raise ConfigurationError(f"Number of cycles must be positive, got {cycles}")

    wallets = load_wallets(config.key_file, strict=config.strict_keys)
    connector = RpcConnector.from_config(config.network, client_factory=client_factory)
    await connector.connect()

    context = RunContext(config, connector, ui=ui, cancel=cancel)
    try:
        return await Orchestrator(context).run(script, wallets, cycles)
    finally:
        ui.close()


def _install_interrupt(cancel: CancellationToken):
    loop = asyncio.get_running_loop()

    def _interrupt():
        if cancel.cancelled:
            return
        logger.warning(f"{Fore.YELLOW}🛑 Interrupted, stopping at the next cycle boundary...{Style.RESET_ALL}")
        cancel.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, _interrupt)
    except (NotImplementedError, RuntimeError):
        # windows event loops have no signal handlers; Ctrl+C then aborts outright
        pass


async def _main(args) -> int:
    try:
        config = load_config(args.env_file)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        return 2

    ui = UIBridge(prompt_timeout=config.prompt_timeout)
    setup_logging(config.log_level, ui)
    print_welcome_message()

    key = args.script
    if key is None:
        print_info("Available scripts:")
        for idx, (name, script) in enumerate(SCRIPTS.items(), start=1):
            print(f"  {Fore.YELLOW}{idx}.{Style.RESET_ALL} {name:<10} {script.title}")
        choice = str(await ui.request_input("Select a script (name or number)", "text", "")).strip()
        names = list(SCRIPTS)
        key = names[int(choice) - 1] if choice.isdigit() and 1 <= int(choice) <= len(names) else choice
    if key not in SCRIPTS:
        print_error(f"Unknown script {key!r}")
        return 2

    cancel = CancellationToken()
    _install_interrupt(cancel)
    try:
        summary = await run_script(key, ui=ui, cycles=args.cycles, config=config, cancel=cancel)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        return 2
    except ConnectivityError as e:
        print_error(f"Connectivity error: {e}")
        return 1
    print_success(summary.describe())
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="monad-onchain", description="Monad testnet onchain activity runner")
    parser.add_argument("script", nargs="?", choices=list(SCRIPTS), help="script to run; prompts when omitted")
    parser.add_argument("--cycles", type=int, default=None, help="cycles per account")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    try:
        sys.exit(asyncio.run(_main(args)))
    except KeyboardInterrupt:
        print_error("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()

import asyncio
import inspect
import logging
import sys
import threading
from typing import Callable, Optional

from colorama import Fore, Style, init

init(autoreset=True)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%H:%M:%S"

# ======================= BANNER BANG =======================

WELCOME_BANNER = f"""
{Fore.YELLOW}
███╗   ███╗ ██████╗ ███╗   ██╗ █████╗ ██████╗
████╗ ████║██╔═══██╗████╗  ██║██╔══██╗██╔══██╗
██╔████╔██║██║   ██║██╔██╗ ██║███████║██║  ██║
██║╚██╔╝██║██║   ██║██║╚██╗██║██╔══██║██║  ██║
██║ ╚═╝ ██║╚██████╔╝██║ ╚████║██║  ██║██████╔╝
╚═╝     ╚═╝ ╚═════╝ ╚═╝  ╚═══╝╚═╝  ╚═╝╚═════╝
{Fore.RESET}
{Fore.GREEN}========================================================================={Fore.RESET}
{Fore.CYAN}              Welcome to MONAD Onchain Testnet Interactive {Fore.RESET}
{Fore.GREEN}========================================================================={Fore.RESET}
"""


def print_welcome_message():
    print(WELCOME_BANNER)


# ======================= PRINT HELPERS =======================

def print_info(message: str):
    print(f"{Fore.CYAN}{message}{Style.RESET_ALL}")


def print_success(message: str):
    print(f"{Fore.GREEN}✅ {message}{Style.RESET_ALL}")


def print_warning(message: str):
    print(f"{Fore.YELLOW}⚠️  {message}{Style.RESET_ALL}")


def print_error(message: str):
    print(f"{Fore.RED}❌ {message}{Style.RESET_ALL}")


# ======================= UI BRIDGE =======================

def _coerce(value, input_type: str, default):
    if value is None:
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
    if input_type == "number":
        try:
            return int(value)
        except (TypeError, ValueError):
            try:
                return float(value)
            except (TypeError, ValueError):
                return default
    return value


class UIBridge:
    """The four UI collaborators, each optional with a console fallback.

    A callback that raises is reported on stderr and the console fallback is
    used instead; a broken UI never stops the run.
    """

    def __init__(
        self,
        add_log: Optional[Callable] = None,
        update_panel: Optional[Callable] = None,
        close_ui: Optional[Callable] = None,
        request_input: Optional[Callable] = None,
        prompt_timeout: float = 60,
    ):
        self._add_log = add_log
        self._update_panel = update_panel
        self._close_ui = close_ui
        self._request_input = request_input
        self.prompt_timeout = prompt_timeout

    def _callback_failed(self, name: str, exc: Exception):
        # not logged: log records are routed back into add_log
        print(f"{Fore.RED}UI callback {name} failed: {exc}{Style.RESET_ALL}", file=sys.stderr)

    def add_log(self, message: str):
        if self._add_log is not None:
            try:
                self._add_log(message)
                return
            except Exception as e:
                self._callback_failed("add_log", e)
        print(message)

    def update_panel(self, message: str):
        if self._update_panel is not None:
            try:
                self._update_panel(message)
                return
            except Exception as e:
                self._callback_failed("update_panel", e)
        print(f"{Fore.CYAN}» {message}{Style.RESET_ALL}")

    def close(self):
        if self._close_ui is not None:
            try:
                self._close_ui()
            except Exception as e:
                self._callback_failed("close_ui", e)

    async def request_input(self, message: str, input_type: str = "text", default=""):
        """Ask the user for a value; falls back to ``default`` when nobody can answer"""
        if self._request_input is not None:
            try:
                value = self._request_input(message, input_type, default)
                if inspect.isawaitable(value):
                    value = await value
                return _coerce(value, input_type, default)
            except Exception as e:
                self._callback_failed("request_input", e)
        return _coerce(await self._console_input(message), input_type, default)

    async def _console_input(self, message: str) -> Optional[str]:
        stdin = sys.stdin
        if stdin is None or not stdin.isatty():
            return None

        loop = asyncio.get_running_loop()
        answer = loop.create_future()

        def _read():
            try:
                value = input(f"{Fore.YELLOW}{message}{Style.RESET_ALL} ")
            except (EOFError, OSError):
                value = None
            if not answer.done():
                loop.call_soon_threadsafe(lambda: answer.done() or answer.set_result(value))

        # daemon thread: an unanswered prompt must not keep the process alive
        threading.Thread(target=_read, name="ui-prompt", daemon=True).start()
        try:
            return await asyncio.wait_for(answer, timeout=self.prompt_timeout)
        except asyncio.TimeoutError:
            print()
            print_warning(f"No answer after {self.prompt_timeout:.0f}s, using default")
            return None


# ======================== Info Logging ========================

class UILogHandler(logging.Handler):
    """Forwards formatted records to the UI log area"""

    def __init__(self, ui: UIBridge, level=logging.NOTSET):
        super().__init__(level)
        self.ui = ui

    def emit(self, record):
        try:
            self.ui.add_log(self.format(record))
        except Exception:
            self.handleError(record)


def setup_logging(level="INFO", ui: Optional[UIBridge] = None) -> logging.Logger:
    """Route the package logger through the UI with the usual time/level format"""
    # third-party libraries keep the plain console handler
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    package_logger = logging.getLogger("monad_onchain")
    package_logger.setLevel(level)
    for handler in list(package_logger.handlers):
        if isinstance(handler, UILogHandler):
            package_logger.removeHandler(handler)
    handler = UILogHandler(ui or UIBridge())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    package_logger.addHandler(handler)
    package_logger.propagate = False
    return package_logger

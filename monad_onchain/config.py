import os
import random
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

# ======================= DEFAULTS =======================
RPC_URLS = [
    "https://testnet-rpc.monad.xyz",
    "https://monad-testnet.drpc.org",
]
CHAIN_ID = 10143
EXPLORER_URL = "https://testnet.monadexplorer.com/tx/"
KEY_FILE = "pvkey.txt"

# seconds
CYCLE_DELAY = (60, 180)
ACCOUNT_DELAY = (60, 180)
STEP_DELAY = (60, 180)


# ======================= ENV HELPERS =======================

def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: int) -> int:
    v = _env(name)
    try:
        return int(v) if v else int(default)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}")


def _env_float(name: str, default: float) -> float:
    v = _env(name)
    try:
        return float(v) if v else float(default)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {v!r}")


def _env_bool(name: str, default: bool) -> bool:
    v = _env(name)
    if not v:
        return default
    return v.lower() in ("1", "true", "yes", "y", "on")


def _env_csv(name: str) -> List[str]:
    raw = _env(name)
    if not raw:
        return []
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


def _env_range(name: str, default: Tuple[float, float]) -> "DelayRange":
    parts = _env_csv(name)
    if not parts:
        return DelayRange(*default)
    if len(parts) != 2:
        raise ConfigurationError(f"{name} must look like 'min,max', got {_env(name)!r}")
    try:
        return DelayRange(float(parts[0]), float(parts[1]))
    except ValueError:
        raise ConfigurationError(f"{name} must hold two numbers, got {_env(name)!r}")


# ======================= RECORDS =======================

@dataclass(frozen=True)
class DelayRange:
    min_seconds: float
    max_seconds: float

    def __post_init__(self):
        if self.min_seconds < 0 or self.max_seconds < self.min_seconds:
            raise ConfigurationError(
                f"Invalid delay range [{self.min_seconds}, {self.max_seconds}]"
            )

    def sample(self, rng: Optional[random.Random] = None) -> float:
        """Uniform random delay inside the range"""
        return (rng or random).uniform(self.min_seconds, self.max_seconds)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    revert_attempts: int = 2
    max_nonce_recoveries: int = 3
    jitter: float = 0.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if not 1 <= self.revert_attempts <= self.max_attempts:
            raise ConfigurationError("revert_attempts must be between 1 and max_attempts")
        if self.base_delay < 0 or self.jitter < 0:
            raise ConfigurationError("base_delay and jitter cannot be negative")
        if self.max_nonce_recoveries < 0:
            raise ConfigurationError("max_nonce_recoveries cannot be negative")


@dataclass(frozen=True)
class GasConfig:
    use_eip1559: bool = True
    priority_fee_gwei: float = 2
    base_fee_multiplier: float = 2
    gas_price_multiplier: float = 1.0
    fallback_gas_limit: int = 250000
    estimate_buffer: float = 1.1

    def __post_init__(self):
        if self.fallback_gas_limit < 21000:
            raise ConfigurationError("fallback_gas_limit must cover a plain transfer (21000)")
        if self.estimate_buffer < 1 or self.base_fee_multiplier <= 0 or self.gas_price_multiplier <= 0:
            raise ConfigurationError("gas multipliers must be positive and the buffer at least 1")
        if self.priority_fee_gwei < 0:
            raise ConfigurationError("priority_fee_gwei cannot be negative")


@dataclass(frozen=True)
class NetworkConfig:
    rpc_urls: Tuple[str, ...] = tuple(RPC_URLS)
    chain_id: Optional[int] = CHAIN_ID
    explorer_url: str = EXPLORER_URL
    request_timeout: float = 30
    failover_threshold: int = 3

    def __post_init__(self):
        if not self.rpc_urls:
            raise ConfigurationError("At least one RPC URL is required")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        if self.failover_threshold < 1:
            raise ConfigurationError("failover_threshold must be at least 1")


@dataclass(frozen=True)
class RunConfig:
    key_file: str = KEY_FILE
    strict_keys: bool = True
    cycles: int = 1
    cycle_delay: DelayRange = DelayRange(*CYCLE_DELAY)
    account_delay: DelayRange = DelayRange(*ACCOUNT_DELAY)
    step_delay: DelayRange = DelayRange(*STEP_DELAY)
    shuffle_accounts: bool = False
    parallel_accounts: bool = False
    simulate_before_send: bool = True
    receipt_timeout: float = 120
    prompt_timeout: float = 60
    log_level: str = "INFO"
    network: NetworkConfig = field(default_factory=NetworkConfig)
    gas: GasConfig = field(default_factory=GasConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self):
        if self.cycles < 1:
            raise ConfigurationError("cycles must be at least 1")
        if self.receipt_timeout <= 0 or self.prompt_timeout <= 0:
            raise ConfigurationError("timeouts must be positive")


def load_config(env_file: Optional[str] = ".env") -> RunConfig:
    """Build a validated RunConfig from .env and the process environment"""
    if env_file and os.path.exists(env_file):
        load_dotenv(env_file)

    network = NetworkConfig(
        rpc_urls=tuple(_env_csv("RPC_URLS") or RPC_URLS),
        chain_id=_env_int("CHAIN_ID", CHAIN_ID) or None,
        explorer_url=_env("EXPLORER_URL", EXPLORER_URL),
        request_timeout=_env_float("RPC_TIMEOUT", 30),
        failover_threshold=_env_int("RPC_FAILOVER_THRESHOLD", 3),
    )
    retry = RetryPolicy(
        max_attempts=_env_int("MAX_RETRIES", 3),
        base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
        revert_attempts=_env_int("REVERT_RETRIES", 2),
        max_nonce_recoveries=_env_int("NONCE_RECOVERIES", 3),
        jitter=_env_float("RETRY_JITTER", 0.0),
    )
    gas = GasConfig(
        use_eip1559=_env_bool("USE_EIP1559", True),
        priority_fee_gwei=_env_float("PRIORITY_FEE_GWEI", 2),
        fallback_gas_limit=_env_int("FALLBACK_GAS_LIMIT", 250000),
    )
    return RunConfig(
        key_file=_env("KEY_FILE", KEY_FILE),
        strict_keys=_env_bool("STRICT_KEYS", True),
        cycles=_env_int("CYCLES", 1),
        cycle_delay=_env_range("CYCLE_DELAY", CYCLE_DELAY),
        account_delay=_env_range("ACCOUNT_DELAY", ACCOUNT_DELAY),
        step_delay=_env_range("STEP_DELAY", STEP_DELAY),
        shuffle_accounts=_env_bool("SHUFFLE_ACCOUNTS", False),
        parallel_accounts=_env_bool("PARALLEL_ACCOUNTS", False),
        simulate_before_send=_env_bool("SIMULATE_BEFORE_SEND", True),
        receipt_timeout=_env_float("RECEIPT_TIMEOUT", 120),
        prompt_timeout=_env_float("PROMPT_TIMEOUT", 60),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        network=network,
        gas=gas,
        retry=retry,
    )

import logging
import re
from dataclasses import dataclass, field
from typing import List

from eth_account import Account

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def is_valid_private_key(key: str) -> bool:
    """Optionally 0x-prefixed, 64 hex characters"""
    return bool(_KEY_PATTERN.match(key))


def load_private_keys(path: str, strict: bool = True) -> List[str]:
    """Read private keys from a newline-delimited file, keeping file order.

    Blank lines are always dropped. In strict mode lines starting with ``#``
    are ignored and malformed keys are skipped with a warning.
    """
    try:
        with open(path, "r", encoding="utf-8") as file:
            lines = [line.strip() for line in file.readlines()]
    except OSError as e:
        raise ConfigurationError(f"Error reading {path}: {e}") from e

    keys = []
    for lineno, line in enumerate(lines, start=1):
        if not line:
            continue
        if strict:
            if line.startswith("#"):
                continue
            if not is_valid_private_key(line):
                logger.warning(f"⚠️  Skipping malformed private key on line {lineno} of {path}")
                continue
        keys.append(line)

    if not keys:
        raise ConfigurationError(f"No private keys found in {path}")
    return keys


@dataclass(frozen=True)
class Wallet:
    address: str
    key: str = field(repr=False)
    index: int = 1

    @classmethod
    def from_key(cls, key: str, index: int = 1) -> "Wallet":
        try:
            account = Account.from_key(key)
        except Exception as e:
            raise ConfigurationError(f"Invalid private key for wallet [{index}]: {e}") from e
        return cls(address=account.address, key=key, index=index)

    @property
    def short(self) -> str:
        return f"{self.address[:8]}..."

    def sign_transaction(self, tx: dict):
        return Account.sign_transaction(tx, self.key)

    def __str__(self):
        return f"[{self.index}] {self.short}"


def load_wallets(path: str, strict: bool = True) -> List[Wallet]:
    """Load keys and derive one Wallet per key, in file order"""
    keys = load_private_keys(path, strict=strict)
    wallets = [Wallet.from_key(key, index=idx) for idx, key in enumerate(keys, start=1)]
    logger.info(f"📸 Loaded {len(wallets)} wallet(s) successfully")
    return wallets

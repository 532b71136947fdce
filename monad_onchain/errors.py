import asyncio
import re
from enum import Enum

import aiohttp
from web3.exceptions import ContractLogicError, TimeExhausted


class OnchainError(Exception):
    """Base class for every error raised by the bot"""


class ConnectivityError(OnchainError, ConnectionError):
    """No RPC endpoint answered the liveness probe"""


class ConfigurationError(OnchainError):
    """Missing key file, empty key set or invalid settings"""


class RateLimitError(OnchainError):
    pass


class NonceConflictError(OnchainError):
    pass


class RevertedError(OnchainError):
    pass


class InsufficientBalanceError(OnchainError):
    pass


class UnknownError(OnchainError):
    pass


class TransactionAlreadyKnown(OnchainError):
    """The node already holds this exact signed transaction"""


class ReceiptTimeoutError(OnchainError):
    """No receipt within the configured wait"""


class OperationCancelled(OnchainError):
    pass


class ErrorKind(Enum):
    RATE_LIMITED = "rate_limited"
    TRANSPORT = "transport"
    REVERTED = "reverted"
    NONCE_CONFLICT = "nonce_conflict"
    ALREADY_KNOWN = "already_known"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    RECEIPT_TIMEOUT = "receipt_timeout"
    UNKNOWN = "unknown"


# ======================= CLASSIFICATION =======================

# 429 only as a standalone number; addresses and wei amounts often contain it
_RATE_LIMIT_PATTERN = re.compile(r"(?<![0-9a-z])429(?![0-9a-z])|too many requests|rate limit")
_KNOWN_TX_MARKERS = ("already known", "known transaction")
_NONCE_MARKERS = (
    "nonce too low",
    "nonce has already been used",
    "replacement transaction underpriced",
)
_REVERT_MARKERS = ("revert",)
_FUNDS_MARKERS = ("insufficient funds", "insufficient balance")

_TYPED_KINDS = (
    (RateLimitError, ErrorKind.RATE_LIMITED),
    (NonceConflictError, ErrorKind.NONCE_CONFLICT),
    (TransactionAlreadyKnown, ErrorKind.ALREADY_KNOWN),
    (RevertedError, ErrorKind.REVERTED),
    (InsufficientBalanceError, ErrorKind.INSUFFICIENT_FUNDS),
    (ReceiptTimeoutError, ErrorKind.RECEIPT_TIMEOUT),
    (UnknownError, ErrorKind.UNKNOWN),
    (ContractLogicError, ErrorKind.REVERTED),
    (TimeExhausted, ErrorKind.RECEIPT_TIMEOUT),
)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a network call to an ErrorKind"""
    for exc_type, kind in _TYPED_KINDS:
        if isinstance(exc, exc_type):
            return kind

    if isinstance(exc, aiohttp.ClientResponseError) and exc.status == 429:
        return ErrorKind.RATE_LIMITED

    message = str(exc).lower()
    # node errors first: their text may carry numbers that look like a status code
    if any(marker in message for marker in _KNOWN_TX_MARKERS):
        return ErrorKind.ALREADY_KNOWN
    if any(marker in message for marker in _NONCE_MARKERS):
        return ErrorKind.NONCE_CONFLICT
    if any(marker in message for marker in _REVERT_MARKERS):
        return ErrorKind.REVERTED
    if any(marker in message for marker in _FUNDS_MARKERS):
        return ErrorKind.INSUFFICIENT_FUNDS
    # before the transport fallback so a 429 wrapped in a generic client error
    # is still treated as rate limiting
    if _RATE_LIMIT_PATTERN.search(message):
        return ErrorKind.RATE_LIMITED

    if isinstance(exc, (aiohttp.ClientConnectionError, asyncio.TimeoutError, ConnectionError)):
        return ErrorKind.TRANSPORT
    return ErrorKind.UNKNOWN


def is_fatal(exc: BaseException) -> bool:
    """Only connectivity and configuration problems abort the whole run"""
    return isinstance(exc, (ConnectivityError, ConfigurationError))

"""Multi-account Monad testnet activity runner"""

__version__ = "0.1.0"

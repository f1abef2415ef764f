"""Service layer helpers"""

from .wallet import WalletService

__all__ = [
    "WalletService",
]

"""Identity models."""

from dataclasses import dataclass
from enum import Enum


class ConnectionKind(str, Enum):
    """How a wallet proves its identity on connect."""
    PRIVATE_KEY = "privateKey"
    MNEMONIC = "mnemonic"


@dataclass(frozen=True)
class Wallet:
    """A derived signing identity. Key material is never kept."""
    address: str
    kind: ConnectionKind

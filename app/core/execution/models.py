"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class TransactionType(str, Enum):
    """Why the funding account is sending a transaction."""
    SPONSORSHIP = "sponsorship"
    BRIDGE_SETTLEMENT = "bridge_settlement"
    INVOICE_PAYMENT = "invoice_payment"


@dataclass
class TransactionIntent:
    """A contract call the relayer should sign and broadcast."""
    tx_type: TransactionType
    chain_id: int
    to_address: str
    data: str                                   # Encoded calldata (hex)
    value: int = 0                              # Wei to send
    description: str = ""


@dataclass
class SubmittedTransaction:
    """A transaction the relayer has broadcast, keyed by idempotency key."""
    idempotency_key: str
    tx_type: TransactionType
    chain_id: int
    nonce: int
    tx_hash: str
    raw_tx: str = field(repr=False, default="")
    attempts: int = 1
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.tx_type.value,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "txHash": self.tx_hash,
            "attempts": self.attempts,
            "submittedAt": self.submitted_at.isoformat(),
        }

"""Typed models used by the bridge subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Set

from ..amounts import decimal_to_str
from ..recovery.errors import InvalidTransitionError


class BridgeDirection(str, Enum):
    DEPOSIT = "deposit"          # L1 -> L2
    WITHDRAWAL = "withdrawal"    # L2 -> L1


class BridgeStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SETTLED = "settled"
    FAILED = "failed"


TRANSITIONS: Dict[BridgeStatus, Set[BridgeStatus]] = {
    BridgeStatus.PENDING: {
        BridgeStatus.CONFIRMED,
        BridgeStatus.FAILED,
    },
    BridgeStatus.CONFIRMED: {
        BridgeStatus.SETTLED,
        BridgeStatus.FAILED,
    },
    BridgeStatus.SETTLED: set(),    # Terminal
    BridgeStatus.FAILED: set(),     # Terminal
}


@dataclass
class BridgeTransfer:
    """A cross-chain transfer and the validator signatures collected for it."""

    id: str
    direction: BridgeDirection
    amount: Decimal
    source_chain_id: int
    destination_chain_id: int
    created_at: datetime
    updated_at: datetime
    status: BridgeStatus = BridgeStatus.PENDING
    source_tx_hash: Optional[str] = None
    destination_tx_hash: Optional[str] = None
    signatures: Dict[str, str] = field(default_factory=dict)  # validator -> signature
    failure_reason: Optional[str] = None
    settling: bool = field(default=False, repr=False)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    def can_transition_to(self, target: BridgeStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def transition_to(self, target: BridgeStatus, now: datetime) -> None:
        if not self.can_transition_to(target):
            raise InvalidTransitionError(
                f"Transfer {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target
        self.updated_at = now

    def copy(self) -> "BridgeTransfer":
        return replace(self, signatures=dict(self.signatures))

    def status_view(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "direction": self.direction.value,
            "amount": decimal_to_str(self.amount),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.status_view(),
            "sourceChainId": self.source_chain_id,
            "destinationChainId": self.destination_chain_id,
            "sourceTxHash": self.source_tx_hash,
            "destinationTxHash": self.destination_tx_hash,
            "validators": sorted(self.signatures),
            "failureReason": self.failure_reason,
            "createdAt": int(self.created_at.timestamp()),
            "updatedAt": int(self.updated_at.timestamp()),
        }

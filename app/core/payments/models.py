"""Invoice models."""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Set

from ..amounts import decimal_to_str
from ..recovery.errors import InvalidTransitionError


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


FINAL_STATUSES = {InvoiceStatus.PAID, InvoiceStatus.FAILED, InvoiceStatus.EXPIRED}

TRANSITIONS: Dict[InvoiceStatus, Set[InvoiceStatus]] = {
    InvoiceStatus.PENDING: {
        InvoiceStatus.PROCESSING,
        InvoiceStatus.EXPIRED,
        InvoiceStatus.FAILED,
    },
    InvoiceStatus.PROCESSING: {
        InvoiceStatus.PAID,
        InvoiceStatus.PENDING,  # Chain submission failed, payer may retry
    },
    InvoiceStatus.PAID: set(),
    InvoiceStatus.FAILED: set(),
    InvoiceStatus.EXPIRED: set(),
}


@dataclass
class Invoice:
    id: str
    amount: Decimal
    description: str
    created_at: datetime
    expires_at: datetime
    status: InvoiceStatus = InvoiceStatus.PENDING
    payer: Optional[str] = None
    tx_hash: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    def is_expired_at(self, now: datetime) -> bool:
        return now > self.expires_at

    def transition_to(self, target: InvoiceStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Invoice {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def copy(self) -> "Invoice":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": decimal_to_str(self.amount),
            "description": self.description,
            "status": self.status.value,
            "customer": self.payer,
            "txHash": self.tx_hash,
            "createdAt": int(self.created_at.timestamp()),
            "expiresAt": int(self.expires_at.timestamp()),
            "paidAt": int(self.paid_at.timestamp()) if self.paid_at else None,
            "failureReason": self.failure_reason,
        }

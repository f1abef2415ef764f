"""Paymaster sponsorship models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class SponsorshipStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    FAILED = "failed"


@dataclass
class SponsorshipRequest:
    """One accepted request to top up a user's paymaster gas balance."""
    id: str
    user: str
    gas_used: int
    signature: str = field(repr=False)
    signer: str
    status: SponsorshipStatus = SponsorshipStatus.PENDING
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status != SponsorshipStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "gasUsed": str(self.gas_used),
            "signer": self.signer,
            "status": self.status.value,
            "txHash": self.tx_hash,
            "error": self.error,
            "createdAt": int(self.created_at.timestamp()),
        }

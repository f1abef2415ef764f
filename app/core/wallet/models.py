"""
Session key models.

A session key is a short-lived secp256k1 key an owner delegates signing to,
so gasless operations can be authorized without the owner's own key.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from eth_account.signers.local import LocalAccount


class SessionKeyStatus(str, Enum):
    """Status of a session key."""
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


REVOKE_REASON_SUPERSEDED = "superseded"
REVOKE_REASON_OWNER = "revoked by owner"


@dataclass
class SessionKey:
    """
    A delegated signing key bound to one owner address.

    The private key lives only inside the manager's table; every copy handed
    out has ``account`` stripped.
    """
    owner: str
    key_address: str
    created_at: datetime
    expires_at: datetime

    status: SessionKeyStatus = SessionKeyStatus.ACTIVE
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    last_used_at: Optional[datetime] = None

    account: Optional[LocalAccount] = field(default=None, repr=False, compare=False)

    def is_valid_at(self, now: datetime) -> bool:
        """Active and not past expiry at ``now``."""
        if self.status != SessionKeyStatus.ACTIVE:
            return False
        return now < self.expires_at

    def public_copy(self) -> "SessionKey":
        return replace(self, account=None)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize without key material."""
        return {
            "owner": self.owner,
            "sessionKey": self.key_address,
            "createdAt": int(self.created_at.timestamp()),
            "expiry": int(self.expires_at.timestamp()),
            "status": self.status.value,
            "revokedAt": int(self.revoked_at.timestamp()) if self.revoked_at else None,
            "revokeReason": self.revoke_reason,
            "lastUsedAt": int(self.last_used_at.timestamp()) if self.last_used_at else None,
        }

"""
Wallet Management Module

Provides session key management for gasless operations:
- SessionKeyManager: Create, check, and revoke session keys
- At most one active key per owner; a new key supersedes the old one
- Expiry is evaluated lazily against the manager's clock

Usage:
    from app.core.wallet import SessionKeyManager

    manager = SessionKeyManager()

    session = await manager.create_session_key(owner, expires_at)

    if await manager.is_authorized(owner, signature, payload_hash):
        ...

    await manager.revoke_session_key(owner)
"""

from .models import (
    REVOKE_REASON_OWNER,
    REVOKE_REASON_SUPERSEDED,
    SessionKey,
    SessionKeyStatus,
)
from .session_manager import SessionKeyManager, utcnow

__all__ = [
    # Models
    "SessionKey",
    "SessionKeyStatus",
    "REVOKE_REASON_OWNER",
    "REVOKE_REASON_SUPERSEDED",
    # Manager
    "SessionKeyManager",
    "utcnow",
]

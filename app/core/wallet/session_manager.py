"""
Session key manager.

Manages the lifecycle of session keys:
- Creation (superseding any earlier active key for the owner)
- Authorization checks against signed digests
- Lazy expiry
- Revocation
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from eth_account import Account

from ..identity.signing import normalize_address, recover_signer, same_address, sign_digest
from ..locks import KeyedLocks
from ..recovery.errors import InvalidExpiryError, UnauthorizedError, ValidationError
from .models import (
    REVOKE_REASON_OWNER,
    REVOKE_REASON_SUPERSEDED,
    SessionKey,
    SessionKeyStatus,
)


logger = logging.getLogger(__name__)

DEFAULT_MAX_LIFETIME = timedelta(days=30)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionKeyManager:
    """
    Owns the session key table.

    Keys are grouped by owner; at most one is active at a time. All
    mutations for an owner run under that owner's lock.
    """

    def __init__(
        self,
        *,
        max_lifetime: timedelta = DEFAULT_MAX_LIFETIME,
        clock: Clock = utcnow,
    ):
        self.max_lifetime = max_lifetime
        self._clock = clock
        self._keys: Dict[str, List[SessionKey]] = {}
        self._locks = KeyedLocks("session-owner")

    async def create_session_key(self, owner: str, expires_at: datetime) -> SessionKey:
        """
        Create a new session key for ``owner``.

        Args:
            owner: The owner address
            expires_at: Absolute expiry, must be in the future and within the
                configured maximum lifetime

        Returns:
            A public copy of the created SessionKey

        Raises:
            ValidationError: owner is not an address
            InvalidExpiryError: expiry in the past or too far out
        """
        owner = normalize_address(owner, field="owner")
        expires_at = self._as_aware(expires_at)
        now = self._clock()

        if expires_at <= now:
            raise InvalidExpiryError("Session key expiry must be in the future")
        if expires_at - now > self.max_lifetime:
            raise InvalidExpiryError(
                f"Session key lifetime exceeds {int(self.max_lifetime.total_seconds())} seconds"
            )

        account = Account.create()
        session = SessionKey(
            owner=owner,
            key_address=account.address,
            created_at=now,
            expires_at=expires_at,
            account=account,
        )

        async with self._locks.hold(owner):
            history = self._keys.setdefault(owner.lower(), [])
            for existing in history:
                if existing.status == SessionKeyStatus.ACTIVE:
                    existing.status = SessionKeyStatus.REVOKED
                    existing.revoked_at = now
                    existing.revoke_reason = REVOKE_REASON_SUPERSEDED
                    logger.info(f"Session key {existing.key_address} for {owner} superseded")
            history.append(session)

        logger.info(
            f"Created session key {session.key_address} for {owner}, "
            f"expires at {expires_at.isoformat()}"
        )
        return session.public_copy()

    async def revoke_session_key(self, owner: str) -> Optional[SessionKey]:
        """
        Revoke the owner's active key.

        No active key is not an error; returns None in that case.
        """
        owner = normalize_address(owner, field="owner")
        async with self._locks.hold(owner):
            active = self._active_locked(owner)
            if active is None:
                return None
            active.status = SessionKeyStatus.REVOKED
            active.revoked_at = self._clock()
            active.revoke_reason = REVOKE_REASON_OWNER

        logger.info(f"Revoked session key {active.key_address} for {owner}")
        return active.public_copy()

    async def is_authorized(self, owner: str, signature: str, payload_hash: bytes) -> bool:
        """
        True iff ``signature`` over ``payload_hash`` recovers to the owner's
        active session key or to the owner address itself.
        """
        try:
            owner = normalize_address(owner, field="owner")
        except ValidationError:
            return False

        signer = recover_signer(payload_hash, signature)
        if signer is None:
            return False

        if same_address(signer, owner):
            return True

        async with self._locks.hold(owner):
            active = self._active_locked(owner)
            if active is None or not same_address(signer, active.key_address):
                return False
            active.last_used_at = self._clock()
            return True

    async def get_active_session_key(self, owner: str) -> Optional[SessionKey]:
        owner = normalize_address(owner, field="owner")
        async with self._locks.hold(owner):
            active = self._active_locked(owner)
            return active.public_copy() if active else None

    async def list_session_keys(self, owner: str) -> List[SessionKey]:
        """All keys ever issued to ``owner``, oldest first."""
        owner = normalize_address(owner, field="owner")
        async with self._locks.hold(owner):
            self._active_locked(owner)
            return [key.public_copy() for key in self._keys.get(owner.lower(), [])]

    async def sign_with_session_key(self, owner: str, payload_hash: bytes) -> str:
        """
        Sign a digest with the owner's active session key.

        Raises:
            UnauthorizedError: no active session key
        """
        owner = normalize_address(owner, field="owner")
        async with self._locks.hold(owner):
            active = self._active_locked(owner)
            if active is None or active.account is None:
                raise UnauthorizedError(f"No active session key for {owner}")
            active.last_used_at = self._clock()
            account = active.account
        return sign_digest(account, payload_hash)

    async def cleanup_expired(self) -> int:
        """Flip every lapsed active key to expired. Returns how many changed."""
        count = 0
        for owner_key in list(self._keys):
            async with self._locks.hold(owner_key):
                now = self._clock()
                for session in self._keys.get(owner_key, []):
                    if session.status == SessionKeyStatus.ACTIVE and now >= session.expires_at:
                        session.status = SessionKeyStatus.EXPIRED
                        count += 1

        if count:
            logger.info(f"Expired {count} session keys")
        return count

    def _active_locked(self, owner: str) -> Optional[SessionKey]:
        """Return the owner's active key, expiring it first if it lapsed.

        Caller must hold the owner's lock.
        """
        now = self._clock()
        for session in reversed(self._keys.get(owner.lower(), [])):
            if session.status != SessionKeyStatus.ACTIVE:
                continue
            if session.is_valid_at(now):
                return session
            session.status = SessionKeyStatus.EXPIRED
            logger.info(f"Session key {session.key_address} for {session.owner} expired")
        return None

    @staticmethod
    def _as_aware(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

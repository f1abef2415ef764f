"""
Identity manager.

Derives the public address for supplied key material. Stateless: nothing
passed in is stored, cached or logged.
"""

import logging
import re
from typing import Optional, Union

from eth_account import Account
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils.exceptions import ValidationError as EthValidationError

from ..recovery.errors import InvalidKeyMaterialError, UnsupportedConnectionKindError
from .models import ConnectionKind, Wallet
from .signing import strip_0x


logger = logging.getLogger(__name__)

_PRIVATE_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


class IdentityManager:
    """Turns key material into a wallet address."""

    def derive_address(
        self,
        kind: Union[ConnectionKind, str],
        material: Optional[str],
    ) -> str:
        """
        Derive the checksummed address for ``material``.

        Args:
            kind: ``privateKey`` or ``mnemonic``
            material: hex private key (``0x`` prefix optional)

        Raises:
            InvalidKeyMaterialError: malformed hex or scalar out of range
            UnsupportedConnectionKindError: mnemonic or unknown kind
        """
        connection = self._parse_kind(kind)

        if connection is ConnectionKind.MNEMONIC:
            raise UnsupportedConnectionKindError(
                "Mnemonic connection is not supported; connect with a private key"
            )

        if not isinstance(material, str) or not material.strip():
            raise InvalidKeyMaterialError("Private key is required")

        body = strip_0x(material.strip())
        if not _PRIVATE_KEY_RE.match(body):
            raise InvalidKeyMaterialError("Private key must be 32 bytes of hex")

        try:
            account = Account.from_key(bytes.fromhex(body))
        except (ValueError, KeyValidationError, EthValidationError):
            raise InvalidKeyMaterialError("Private key is outside the secp256k1 range")

        return account.address

    def connect(self, kind: Union[ConnectionKind, str], material: Optional[str]) -> Wallet:
        connection = self._parse_kind(kind)
        address = self.derive_address(connection, material)
        logger.info(f"Wallet connected: {address}")
        return Wallet(address=address, kind=connection)

    def _parse_kind(self, kind: Union[ConnectionKind, str]) -> ConnectionKind:
        if isinstance(kind, ConnectionKind):
            return kind
        try:
            return ConnectionKind(kind)
        except ValueError:
            raise UnsupportedConnectionKindError(f"Unsupported connection type: {kind!r}")

"""
Digest signing and signer recovery.

Every signature the service checks is an EIP-191 ``personal_sign`` over a
32-byte keccak digest, so wallets, session keys and bridge validators all
sign the same way.
"""

from __future__ import annotations

import re
from typing import Optional, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import is_address, keccak, to_checksum_address
from eth_utils.exceptions import ValidationError as EthValidationError

from ..recovery.errors import ValidationError

SIGNATURE_LENGTH = 65

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

_HEX_RE = re.compile(r"^(0x)?[0-9a-fA-F]*$")

Signer = Union[LocalAccount, str, bytes]


def strip_0x(value: str) -> str:
    return value[2:] if value[:2].lower() == "0x" else value


def hex_to_bytes(value: str, *, field: str = "value") -> bytes:
    """Decode a hex string with or without ``0x``."""
    if not isinstance(value, str) or not _HEX_RE.match(value):
        raise ValidationError(f"{field} must be hex encoded")
    body = strip_0x(value)
    if len(body) % 2:
        body = "0" + body
    return bytes.fromhex(body)


def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def normalize_address(address: str, *, field: str = "address") -> str:
    """Return the EIP-55 form of ``address`` or raise ValidationError."""
    if not isinstance(address, str) or not is_address(address.strip()):
        raise ValidationError(f"{field} is not a valid address: {address!r}")
    return to_checksum_address(address.strip())


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and is_address(address)


def digest(*parts: bytes) -> bytes:
    """keccak256 over the concatenated parts."""
    return keccak(b"".join(parts))


def sign_digest(signer: Signer, payload_hash: bytes) -> str:
    """EIP-191 sign a 32-byte digest, returning a 0x-prefixed signature."""
    if len(payload_hash) != 32:
        raise ValidationError("payload hash must be 32 bytes")
    message = encode_defunct(primitive=payload_hash)
    if isinstance(signer, LocalAccount):
        signed = signer.sign_message(message)
    else:
        signed = Account.sign_message(message, private_key=signer)
    return to_hex(signed.signature)


def canonical_signature(signature: Union[str, bytes]) -> Optional[bytes]:
    """Return ``r || s || v`` with low ``s`` and ``v`` in {27, 28}.

    Every accepted encoding of one signature maps to the same 65 bytes, so
    replay guards can key on the result. High-``s`` (malleated) signatures
    and out-of-range ``r``/``s``/``v`` give None.
    """
    if isinstance(signature, str):
        try:
            raw = hex_to_bytes(signature.strip(), field="signature")
        except ValidationError:
            return None
    elif isinstance(signature, (bytes, bytearray)):
        raw = bytes(signature)
    else:
        return None

    if len(raw) != SIGNATURE_LENGTH:
        return None

    r = int.from_bytes(raw[:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]
    if v in (0, 1):
        v += 27
    if v not in (27, 28):
        return None
    if not 0 < r < SECP256K1_N or not 0 < s <= SECP256K1_N // 2:
        return None
    return raw[:64] + bytes([v])


def recover_signer(payload_hash: bytes, signature: Union[str, bytes]) -> Optional[str]:
    """Recover the checksummed signer of ``payload_hash``.

    Returns None when the signature is malformed, malleated or does not
    recover to a point on the curve; callers treat that the same as a wrong
    signer.
    """
    raw = canonical_signature(signature)
    if raw is None:
        return None

    try:
        return Account.recover_message(encode_defunct(primitive=payload_hash), signature=raw)
    except (ValueError, TypeError, BadSignature, KeyValidationError, EthValidationError):
        return None


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()

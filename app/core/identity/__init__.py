"""
Identity Module

Key-derived wallet identities and the EIP-191 signing helpers shared by
every component that checks a signature.
"""

from .manager import IdentityManager
from .models import ConnectionKind, Wallet
from .signing import (
    canonical_signature,
    digest,
    hex_to_bytes,
    is_valid_address,
    normalize_address,
    recover_signer,
    same_address,
    sign_digest,
    strip_0x,
    to_hex,
)

__all__ = [
    "IdentityManager",
    "ConnectionKind",
    "Wallet",
    "canonical_signature",
    "digest",
    "hex_to_bytes",
    "is_valid_address",
    "normalize_address",
    "recover_signer",
    "same_address",
    "sign_digest",
    "strip_0x",
    "to_hex",
]

"""
Validator attestation digests.

Validators sign ``keccak256(abi.encode(uint256 amountWei, bytes32 sourceTxHash))``
with EIP-191, the same payload the L1 bridge contract checks in
``initiateWithdrawal``.
"""

import re
from decimal import Decimal

from eth_abi import encode
from eth_utils import keccak

from ..amounts import ETH_DECIMALS, to_base_units
from ..recovery.errors import ValidationError

_SOURCE_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def normalize_source_hash(value: str) -> str:
    """Lower-case and left-pad a transaction hash to 32 bytes."""
    if not isinstance(value, str) or not _SOURCE_HASH_RE.match(value.strip()):
        raise ValidationError("Source transaction hash must be 0x followed by 1-64 hex digits")
    return "0x" + value.strip()[2:].lower().rjust(64, "0")


def source_hash_bytes(value: str) -> bytes:
    return bytes.fromhex(normalize_source_hash(value)[2:])


def withdrawal_digest(amount: Decimal, source_tx_hash: str) -> bytes:
    amount_wei = to_base_units(amount, ETH_DECIMALS)
    return keccak(encode(["uint256", "bytes32"], [amount_wei, source_hash_bytes(source_tx_hash)]))

"""
Tests for digest signing, signer recovery and address helpers.
"""

import pytest
from eth_account import Account
from eth_utils import keccak

from app.core.identity import (
    canonical_signature,
    digest,
    hex_to_bytes,
    is_valid_address,
    normalize_address,
    recover_signer,
    same_address,
    sign_digest,
    strip_0x,
)
from app.core.identity.signing import SECP256K1_N
from app.core.recovery.errors import ValidationError

KEY = "0x" + "5d" * 32
PAYLOAD = keccak(b"payload")


def malleate(signature: str) -> str:
    """Same signature with s replaced by n - s and the parity flipped."""
    raw = bytes.fromhex(signature[2:])
    s = int.from_bytes(raw[32:64], "big")
    return "0x" + (raw[:32] + (SECP256K1_N - s).to_bytes(32, "big") + bytes([55 - raw[64]])).hex()


class TestSignAndRecover:
    def test_recovers_signer(self):
        account = Account.from_key(KEY)
        signature = sign_digest(account, PAYLOAD)

        assert signature.startswith("0x")
        assert len(signature) == 2 + 65 * 2
        assert recover_signer(PAYLOAD, signature) == account.address

    def test_raw_key_and_account_sign_identically(self):
        assert sign_digest(KEY, PAYLOAD) == sign_digest(Account.from_key(KEY), PAYLOAD)

    def test_other_payload_recovers_someone_else(self):
        signature = sign_digest(KEY, PAYLOAD)
        assert recover_signer(keccak(b"other"), signature) != Account.from_key(KEY).address

    def test_payload_must_be_32_bytes(self):
        with pytest.raises(ValidationError):
            sign_digest(KEY, b"short")

    @pytest.mark.parametrize("signature", ["", "0x", "0x1234", "not hex"])
    def test_malformed_signature_recovers_nothing(self, signature):
        assert recover_signer(PAYLOAD, signature) is None


class TestCanonicalSignature:
    def test_prefix_and_case_do_not_matter(self):
        signature = sign_digest(KEY, PAYLOAD)

        canonical = canonical_signature(signature)

        assert canonical is not None and len(canonical) == 65
        assert canonical_signature(signature[2:]) == canonical
        assert canonical_signature(signature.upper().replace("0X", "0x")) == canonical
        assert canonical_signature(bytes.fromhex(signature[2:])) == canonical

    def test_parity_byte_normalized(self):
        signature = sign_digest(KEY, PAYLOAD)
        raw = bytes.fromhex(signature[2:])
        parity_form = raw[:64] + bytes([raw[64] - 27])

        assert canonical_signature(parity_form) == raw
        assert recover_signer(PAYLOAD, parity_form) == Account.from_key(KEY).address

    def test_high_s_rejected(self):
        signature = sign_digest(KEY, PAYLOAD)
        malleated = malleate(signature)

        assert canonical_signature(malleated) is None
        assert recover_signer(PAYLOAD, malleated) is None

    @pytest.mark.parametrize("v", [26, 29, 35])
    def test_bad_recovery_id_rejected(self, v):
        raw = bytes.fromhex(sign_digest(KEY, PAYLOAD)[2:])
        assert canonical_signature(raw[:64] + bytes([v])) is None

    def test_zero_r_rejected(self):
        raw = bytes.fromhex(sign_digest(KEY, PAYLOAD)[2:])
        assert canonical_signature(bytes(32) + raw[32:]) is None


class TestAddressHelpers:
    def test_normalize_checksums(self):
        address = Account.from_key(KEY).address
        assert normalize_address(address.lower()) == address
        assert normalize_address(f"  {address}  ") == address

    @pytest.mark.parametrize("value", [None, "", "0x1234", "0x" + "g" * 40])
    def test_normalize_rejects_garbage(self, value):
        with pytest.raises(ValidationError):
            normalize_address(value, field="owner")

    def test_is_valid_address(self):
        assert is_valid_address(Account.from_key(KEY).address)
        assert not is_valid_address("0xabc")
        assert not is_valid_address(None)

    def test_same_address_ignores_case(self):
        address = Account.from_key(KEY).address
        assert same_address(address, address.lower())
        assert not same_address(address, None)

    def test_hex_helpers(self):
        assert strip_0x("0xabcd") == "abcd"
        assert strip_0x("abcd") == "abcd"
        assert hex_to_bytes("0xabc") == bytes.fromhex("0abc")
        with pytest.raises(ValidationError):
            hex_to_bytes("0xzz")

    def test_digest_concatenates(self):
        assert digest(b"ab", b"cd") == keccak(b"abcd")

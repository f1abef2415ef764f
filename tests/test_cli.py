"""
Tests for the local CLI helpers.
"""

from decimal import Decimal

from cli import main
from app.core.bridge import withdrawal_digest
from app.core.identity import recover_signer
from app.core.paymaster import sponsorship_digest

SOURCE = "0x" + "ab" * 32


def test_sign_withdrawal(capsys, validator_accounts):
    keys = ["0x" + bytes(account.key).hex() for account in validator_accounts[:2]]
    argv = ["sign-withdrawal", "1.5", SOURCE]
    for key in keys:
        argv += ["--key", key]

    assert main(argv) == 0

    lines = capsys.readouterr().out.strip().splitlines()
    payload_hash = withdrawal_digest(Decimal("1.5"), SOURCE)
    for line, account in zip(lines, validator_accounts):
        address, signature = line.split(": ")
        assert address == account.address
        assert recover_signer(payload_hash, signature) == account.address


def test_sign_sponsorship(capsys, owner_account):
    key = "0x" + bytes(owner_account.key).hex()

    assert main(["sign-sponsorship", owner_account.address.lower(), "21000", "--key", key]) == 0

    signature = capsys.readouterr().out.strip()
    assert recover_signer(sponsorship_digest(owner_account.address, 21000), signature) == owner_account.address


def test_bad_amount_reported(capsys):
    assert main(["sign-withdrawal", "abc", SOURCE, "--key", "0x" + "11" * 32]) == 1
    assert "❌" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()

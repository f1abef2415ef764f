"""
Tests for log redaction.
"""

from app.logging_config import redact_secrets


def test_secret_fields_redacted():
    event = {"event": "loaded", "relayer_private_key": "0x" + "a1" * 32, "Mnemonic": "test test"}

    result = redact_secrets(None, "info", event)

    assert result["relayer_private_key"] == "[redacted]"
    assert result["Mnemonic"] == "[redacted]"
    assert result["event"] == "loaded"


def test_signatures_shortened():
    signature = "0x" + "ab" * 65
    result = redact_secrets(None, "info", {"signatures": [signature, "0x12"], "signature": signature})

    assert result["signature"] == f"{signature[:10]}...{signature[-4:]}"
    assert result["signatures"] == [f"{signature[:10]}...{signature[-4:]}", "0x12"]


def test_other_fields_untouched():
    event = {"event": "ok", "tx_hash": "0x" + "cd" * 32}
    assert redact_secrets(None, "info", dict(event)) == event

"""
Paymaster Module

Gas sponsorship for users who sign with their own key or an active session
key. The funding account pays; each signature is sponsored once.
"""

from .models import SponsorshipRequest, SponsorshipStatus
from .relay import PaymasterRelay, parse_gas_used, sponsorship_digest

__all__ = [
    "PaymasterRelay",
    "SponsorshipRequest",
    "SponsorshipStatus",
    "parse_gas_used",
    "sponsorship_digest",
]

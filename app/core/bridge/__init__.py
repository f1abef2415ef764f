"""Bridge orchestration components."""

from typing import TYPE_CHECKING

from .attestation import normalize_source_hash, withdrawal_digest
from .models import TRANSITIONS, BridgeDirection, BridgeStatus, BridgeTransfer

if TYPE_CHECKING:  # pragma: no cover
    from .coordinator import BridgeCoordinator

__all__ = [
    "BridgeCoordinator",
    "BridgeDirection",
    "BridgeStatus",
    "BridgeTransfer",
    "TRANSITIONS",
    "normalize_source_hash",
    "withdrawal_digest",
]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name == "BridgeCoordinator":
        from .coordinator import BridgeCoordinator as _BridgeCoordinator

        return _BridgeCoordinator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

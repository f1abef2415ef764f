"""
Error Classification

Defines the error taxonomy shared by every component.
Errors are classified as recoverable (chain calls that may be retried) or
unrecoverable (bad input, failed authorization, conflicting state).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Stable error kinds exposed across the service boundary."""

    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INSUFFICIENT_SIGNATURES = "insufficient_signatures"
    CHAIN = "chain_error"
    UNSUPPORTED = "unsupported"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    kind: ErrorKind = ErrorKind.INTERNAL
    recoverable: bool = False
    retry_after_seconds: Optional[float] = None
    chain_id: Optional[int] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class ServiceError(Exception):
    """
    Base class for every error a component raises on purpose.

    ``kind`` selects the taxonomy bucket, ``code`` names the specific
    failure, ``message`` is safe to show to callers.
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "INTERNAL"
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        self.context = context or ErrorContext(
            kind=self.kind,
            recoverable=self.recoverable,
            details=self.details,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
        }


class RecoverableError(ServiceError):
    """
    Base class for errors that can be retried.

    Only chain interaction (RPC transport, broadcast, timeouts) lands here.
    """

    recoverable = True

    def __init__(
        self,
        message: str,
        *,
        retry_after: Optional[float] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, code=code, details=details, context=context)
        self.retry_after = retry_after
        self.context.retry_after_seconds = retry_after


class UnrecoverableError(ServiceError):
    """
    Base class for errors that must never be retried.

    Validation and authorization failures are final for a given input.
    """

    recoverable = False


# Validation
class ValidationError(UnrecoverableError):
    """Malformed or out-of-range input."""

    kind = ErrorKind.VALIDATION
    code = "INVALID_INPUT"


class InvalidKeyMaterialError(ValidationError):
    code = "INVALID_KEY_MATERIAL"


class InvalidExpiryError(ValidationError):
    code = "INVALID_EXPIRY"


class SponsorshipLimitError(ValidationError):
    """Spending policy refused the sponsorship."""

    code = "SPONSORSHIP_LIMIT"


class ConfigurationError(ValidationError):
    """Process configuration is missing or inconsistent."""

    code = "INVALID_CONFIGURATION"


# Authorization
class UnauthorizedError(UnrecoverableError):
    kind = ErrorKind.UNAUTHORIZED
    code = "UNAUTHORIZED"


class InvalidSignatureError(UnauthorizedError):
    code = "INVALID_SIGNATURE"


# Lookup
class NotFoundError(UnrecoverableError):
    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"


# Conflicts
class ConflictError(UnrecoverableError):
    kind = ErrorKind.CONFLICT
    code = "CONFLICT"


class DuplicateRequestError(ConflictError):
    code = "DUPLICATE_REQUEST"


class DuplicateSignatureError(ConflictError):
    code = "DUPLICATE_SIGNATURE"


class AlreadyClaimedError(ConflictError):
    code = "ALREADY_CLAIMED"


class AlreadyFinalizedError(ConflictError):
    code = "ALREADY_FINALIZED"


class PaymentInProgressError(ConflictError):
    code = "PAYMENT_IN_PROGRESS"


class InvoiceExpiredError(ConflictError):
    code = "EXPIRED"


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"


# Threshold
class InsufficientSignaturesError(UnrecoverableError):
    """
    Not enough validator signatures yet.

    Not a hard failure: a transfer with at least one attestation is recorded
    as pending and the caller may resubmit with more signatures.
    ``transfer_id`` is None when nothing was recorded.
    """

    kind = ErrorKind.INSUFFICIENT_SIGNATURES
    code = "INSUFFICIENT_SIGNATURES"

    def __init__(
        self,
        message: str,
        *,
        transfer_id: Optional[str],
        collected: int,
        threshold: int,
    ):
        super().__init__(
            message,
            details={"transferId": transfer_id, "collected": collected, "threshold": threshold},
        )
        self.transfer_id = transfer_id
        self.collected = collected
        self.threshold = threshold


# Chain
class ChainError(RecoverableError):
    """RPC or broadcast failure."""

    kind = ErrorKind.CHAIN
    code = "CHAIN_ERROR"

    def __init__(
        self,
        message: str = "Chain request failed",
        *,
        chain_id: Optional[int] = None,
        retry_after: Optional[float] = None,
        code: Optional[str] = None,
    ):
        super().__init__(
            message,
            retry_after=retry_after,
            code=code,
            context=ErrorContext(kind=ErrorKind.CHAIN, recoverable=True, chain_id=chain_id),
        )
        self.chain_id = chain_id


class SubmissionFailedError(ChainError):
    """Retries exhausted; the entity was left in its pre-call state."""

    code = "SUBMISSION_FAILED"


# Unsupported
class UnsupportedError(UnrecoverableError):
    kind = ErrorKind.UNSUPPORTED
    code = "UNSUPPORTED"


class UnsupportedConnectionKindError(UnsupportedError):
    code = "UNSUPPORTED_CONNECTION_KIND"


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Unknown exceptions are internal and not retried.
    """
    if isinstance(error, ServiceError):
        return error.context

    message = str(error).lower()
    network_patterns = ["connection", "network", "unreachable", "refused", "timeout", "timed out"]
    if any(p in message for p in network_patterns):
        return ErrorContext(kind=ErrorKind.CHAIN, recoverable=True, retry_after_seconds=5.0)

    return ErrorContext(kind=ErrorKind.INTERNAL, recoverable=False)

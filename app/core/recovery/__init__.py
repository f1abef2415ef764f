"""
Error Recovery Module

Provides the error taxonomy, error classification and retry strategies
for chain calls.
"""

from .errors import (
    ErrorKind,
    ErrorContext,
    ServiceError,
    RecoverableError,
    UnrecoverableError,
    ValidationError,
    InvalidKeyMaterialError,
    InvalidExpiryError,
    SponsorshipLimitError,
    ConfigurationError,
    UnauthorizedError,
    InvalidSignatureError,
    NotFoundError,
    ConflictError,
    DuplicateRequestError,
    DuplicateSignatureError,
    AlreadyClaimedError,
    AlreadyFinalizedError,
    PaymentInProgressError,
    InvoiceExpiredError,
    InvalidTransitionError,
    InsufficientSignaturesError,
    ChainError,
    SubmissionFailedError,
    UnsupportedError,
    UnsupportedConnectionKindError,
    classify_error,
)
from .strategies import (
    RecoveryStrategy,
    RetryConfig,
    RetryStrategy,
    ExponentialBackoffStrategy,
)

__all__ = [
    # Errors
    "ErrorKind",
    "ErrorContext",
    "ServiceError",
    "RecoverableError",
    "UnrecoverableError",
    "ValidationError",
    "InvalidKeyMaterialError",
    "InvalidExpiryError",
    "SponsorshipLimitError",
    "ConfigurationError",
    "UnauthorizedError",
    "InvalidSignatureError",
    "NotFoundError",
    "ConflictError",
    "DuplicateRequestError",
    "DuplicateSignatureError",
    "AlreadyClaimedError",
    "AlreadyFinalizedError",
    "PaymentInProgressError",
    "InvoiceExpiredError",
    "InvalidTransitionError",
    "InsufficientSignaturesError",
    "ChainError",
    "SubmissionFailedError",
    "UnsupportedError",
    "UnsupportedConnectionKindError",
    "classify_error",
    # Strategies
    "RecoveryStrategy",
    "RetryConfig",
    "RetryStrategy",
    "ExponentialBackoffStrategy",
]

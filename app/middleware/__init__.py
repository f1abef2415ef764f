from .logging_middleware import RequestLoggingMiddleware, WALLET_HEADER

__all__ = [
    "RequestLoggingMiddleware",
    "WALLET_HEADER",
]

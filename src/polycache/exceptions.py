"""Cache-related exceptions."""


class CacheError(Exception):
    """Base exception for cache operations."""

    pass


class CacheValidationError(CacheError, ValueError):
    """Raised when a key, value or timeout is rejected before any I/O."""

    pass


class CacheTypeError(CacheError, TypeError):
    """Raised when a stored value cannot take part in an arithmetic update."""

    pass


class CacheConfigError(CacheError):
    """Raised when the cache backend cannot be selected from configuration."""

    pass


class CacheRetryExhaustedError(CacheError):
    """Raised when a compare-and-swap loop gives up on a key."""

    def __init__(self, key: str, operation: str, attempts: int) -> None:
        self.key = key
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"failed to {operation} key [{key}] after {attempts} attempts")

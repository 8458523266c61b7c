"""
OData Shop - Custom Exceptions
================================
Data-layer exceptions that can be caught and converted to HTTP responses.
"""


class ShopError(Exception):
    """Base exception for all data-layer errors."""
    def __init__(self, message: str = "An unexpected error occurred."):
        self.message = message
        super().__init__(self.message)


class InvalidArgument(ShopError, ValueError):
    """Raised when caller-supplied input violates a documented precondition."""
    pass


class InvalidOperation(ShopError):
    """Raised when an operation is not valid in the current state (e.g. after dispose)."""
    pass


class ConcurrencyConflict(ShopError):
    """Raised at commit time when a row was modified since it was read."""
    def __init__(self, message: str = ""):
        super().__init__(
            message
            or "A concurrency conflict occurred while saving changes. "
               "The record may have been modified by another user."
        )


class PersistenceError(ShopError):
    """Raised for any other storage failure. The cause is chained, never shown to clients."""
    def __init__(self, message: str = ""):
        super().__init__(message or "An error occurred while saving changes to the database.")


class QueryOptionError(InvalidArgument):
    """Raised for malformed or over-limit OData query options."""
    pass


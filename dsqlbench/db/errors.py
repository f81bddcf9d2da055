"""
Error taxonomy for store operations.

Retry decisions are made on these types only: TransientStoreError is the
single retryable class, everything else is terminal for the caller.
"""


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = False):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class TransientStoreError(DatabaseError):
    """Connectivity, timeout or server-side transient fault."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message, operation=operation, recoverable=True)


class RetriesExhaustedError(DatabaseError):
    """A transient fault persisted through every allowed attempt."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            operation=operation,
            recoverable=False,
        )
        self.attempts = attempts
        self.last_error = last_error


class ConflictError(DatabaseError):
    """Insert was a no-op because the email already exists."""

    def __init__(self, email: str, operation: str = "insert_user"):
        super().__init__(
            f"User with email '{email}' already exists",
            operation=operation,
            recoverable=False,
        )
        self.email = email

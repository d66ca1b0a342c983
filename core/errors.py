# core/errors.py
"""
Ledger error taxonomy.

Domain code raises these; the API views translate them into HTTP responses.
Messages name the check that failed without echoing the whole record.
"""


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""
    pass


class ValidationError(LedgerError):
    """Malformed identifier, malformed field value, or missing required fields."""
    pass


class DuplicateAssetError(LedgerError):
    """Raised when an asset ID is already registered."""
    pass


class NotFoundError(LedgerError):
    """Raised when an asset or the registry key is absent."""
    pass


class MalformedRecordError(LedgerError):
    """Raised when stored bytes fail to decode."""
    pass


class PermissionDenied(LedgerError):
    """
    Raised when a role, ownership, status or scrapped-flag check fails.

    `failed` lists the violated conjuncts, e.g.
    ["status is Mining, expected Distributing", "caller is not the owner"].
    """

    def __init__(self, operation: str, failed: list[str]):
        self.operation = operation
        self.failed = list(failed)
        super().__init__(f"Permission denied. {operation}: " + "; ".join(self.failed))


class IdentityError(LedgerError):
    """Raised when the caller's identity or role cannot be resolved."""
    pass


class StorageError(LedgerError):
    """Raised when the underlying get/put fails."""
    pass


class WriteConflictError(StorageError):
    """Raised when a compare-and-swap finds the record at a different version."""

    def __init__(self, key: str, expected_version: int):
        self.key = key
        self.expected_version = expected_version
        super().__init__(f"Record {key} changed since version {expected_version}")

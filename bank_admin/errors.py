"""
Domain error types

Every error raised by the record managers and the authentication gate derives
from BankAdminError so the HTTP layer can map it to a status code.
"""


class BankAdminError(Exception):
    """Base class for all bank admin errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BankAdminError, ValueError):
    """Malformed or semantically invalid input"""


class NotFoundError(BankAdminError):
    """Referenced identifier does not exist"""


class ConflictError(BankAdminError):
    """Operation would violate a business invariant"""


class AuthenticationError(BankAdminError):
    """Bad credentials or an invalid/expired token"""

"""
QDAO Exceptions

Base exception classes shared by every QDAO component. Domain-specific
rejections live beside the component that raises them.
"""


class QDAOException(Exception):
    """Base exception for QDAO."""
    pass


class ConfigurationError(QDAOException):
    """Configuration error."""
    pass


class NotAuthorizedError(QDAOException):
    """Caller is not allowed to perform a privileged operation."""
    pass


class InvalidAddressError(QDAOException):
    """Zero or malformed identity supplied where a real one is required."""
    pass


class ZeroAmountError(QDAOException):
    """Amount argument must be strictly positive."""
    pass


class ReentrancyError(QDAOException):
    """Nested entry into a non-reentrant operation."""
    pass


class TransferFailedError(QDAOException):
    """Outbound token transfer was rejected by the ledger."""
    pass

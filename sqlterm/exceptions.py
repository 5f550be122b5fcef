"""Core exceptions for SQLTerm."""

from enum import Enum
from typing import Any, Dict, Optional


class SQLTermError(Exception):
    """Base exception for all SQLTerm errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SQLTermError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class DatabaseError(SQLTermError):
    """Raised when there's an error talking to a database."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_type = database_type


class ConnectionFailure(str, Enum):
    """Why a connection attempt failed."""
    UNREACHABLE = "unreachable"
    AUTH_REJECTED = "auth_rejected"
    TIMEOUT = "timeout"


class DatabaseConnectionError(DatabaseError):
    """Raised when a connection cannot be opened.

    Callers present the kinds differently: ``UNREACHABLE`` and ``TIMEOUT``
    warrant a retry prompt, ``AUTH_REJECTED`` a credentials prompt.
    """

    def __init__(
        self,
        message: str,
        kind: ConnectionFailure = ConnectionFailure.UNREACHABLE,
        database_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, database_type, details)
        self.kind = kind


class ErrorCategory(str, Enum):
    """Classification of a failed statement."""
    SYNTAX = "syntax"
    PERMISSION = "permission"
    CONNECTIVITY = "connectivity"
    TIMEOUT = "timeout"
    OTHER = "other"


class ExecutionError(DatabaseError):
    """Raised (or recorded as an outcome) when a statement fails."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.OTHER,
        statement: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details=details)
        self.category = category
        self.statement = statement


class SchemaFailure(str, Enum):
    """Why a schema node could not be expanded."""
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    OTHER = "other"


class SchemaError(DatabaseError):
    """Error attached to a single schema node."""

    def __init__(
        self,
        message: str,
        kind: SchemaFailure = SchemaFailure.OTHER,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details=details)
        self.kind = kind


class ExportFailure(str, Enum):
    """Why an export could not be produced."""
    ENCODING_FAILURE = "encoding_failure"
    UNSUPPORTED_FORMAT = "unsupported_format"
    WRITE_FAILURE = "write_failure"
    NO_RESULTS = "no_results"


class ExportError(SQLTermError):
    """Raised when a result set cannot be exported."""

    def __init__(
        self,
        message: str,
        kind: ExportFailure = ExportFailure.ENCODING_FAILURE,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.kind = kind

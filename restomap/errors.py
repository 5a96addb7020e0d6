from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from dataclasses import dataclass


class ErrorCategory(Enum):
    """Categories of errors raised by the service layer."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    CONFIGURATION = "configuration"


# HTTP status each category maps to at the API boundary
_STATUS_BY_CATEGORY = {
    ErrorCategory.AUTHENTICATION: 401,
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.STORAGE: 500,
    ErrorCategory.CONFIGURATION: 500,
}


@dataclass
class ErrorContext:
    """Context information for an error."""
    username: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[Any] = None
    operation: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class RestoMapError(Exception):
    """Base exception class for RestoMap errors."""

    default_code = "Error"

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        context: Optional[ErrorContext] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext()
        self.code = code or self.default_code

    @property
    def status_code(self) -> int:
        return _STATUS_BY_CATEGORY[self.category]

    def get_user_message(self) -> str:
        """Generate a user-friendly error message."""
        return self.message

    def get_log_message(self) -> str:
        """Generate a detailed log message."""
        log_msg = f"[{self.category.value.upper()}] {self.code}: {self.message}"

        if self.context.operation:
            log_msg += f" (Operation: {self.context.operation})"
        if self.context.resource:
            log_msg += f" (Resource: {self.context.resource}={self.context.resource_id})"
        if self.context.username:
            log_msg += f" (User: {self.context.username})"
        if self.context.additional_info:
            details = ", ".join(f"{k}={v}" for k, v in self.context.additional_info.items())
            log_msg += f" | Details: {details}"

        return log_msg

    def to_body(self) -> Dict[str, Any]:
        """JSON body returned to the client."""
        return {
            "error": self.code,
            "message": self.get_user_message(),
            "timestamp": datetime.now().isoformat(),
        }


class AuthenticationError(RestoMapError):
    """Missing, invalid or expired credentials."""

    default_code = "Unauthorized"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, code: Optional[str] = None):
        super().__init__(message, ErrorCategory.AUTHENTICATION, context, code)


class AuthorizationError(RestoMapError):
    """Valid identity, insufficient role or ownership."""

    default_code = "Forbidden"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, code: Optional[str] = None):
        super().__init__(message, ErrorCategory.AUTHORIZATION, context, code)


class ValidationError(RestoMapError):
    """Input validation and business-rule errors."""

    default_code = "Validation failed"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, code: Optional[str] = None):
        super().__init__(message, ErrorCategory.VALIDATION, context, code)


class NotFoundError(RestoMapError):
    """Entity lookup by id or name found nothing."""

    default_code = "Not found"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, code: Optional[str] = None):
        super().__init__(message, ErrorCategory.NOT_FOUND, context, code)


class StorageError(RestoMapError):
    """Blob store failures (upload, delete, read)."""

    default_code = "Storage failure"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, code: Optional[str] = None):
        super().__init__(message, ErrorCategory.STORAGE, context, code)


class ConfigurationError(RestoMapError):
    """Configuration and setup errors, raised at startup."""

    default_code = "Configuration error"

    def __init__(self, message: str, context: Optional[ErrorContext] = None, code: Optional[str] = None):
        super().__init__(message, ErrorCategory.CONFIGURATION, context, code)

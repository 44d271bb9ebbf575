"""
Custom exceptions for the metrics dashboard
Provides structured error handling across all domains
"""
from typing import Any, Dict, Optional

# Response bodies quoted in transport errors are cut to this many characters
RESPONSE_BODY_LIMIT = 200


class DashboardError(Exception):
    """Base exception for all dashboard errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DashboardError):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: Optional[str] = None, **details):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={"field": field, **details} if field else details,
            status_code=400,
        )


class ExternalAPIError(DashboardError):
    """Raised when an external API call fails"""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **details,
    ):
        body = response_body[:RESPONSE_BODY_LIMIT] if response_body else None
        full_message = f"{provider} API error: {message}"
        if status_code:
            full_message += f" (status {status_code})"
        if body:
            full_message += f" - {body}"

        super().__init__(
            message=full_message,
            error_code="EXTERNAL_API_ERROR",
            details={
                "provider": provider,
                "api_status_code": status_code,
                "response_body": body,
                **details,
            },
            status_code=status_code or 502,  # Use provided status_code or default to Bad Gateway
        )
        self.provider = provider


class ConfigurationError(DashboardError):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting} if setting else {},
            status_code=500,
        )
        self.setting = setting


class DatabaseError(DashboardError):
    """Raised when database operations fail"""

    def __init__(self, message: str, operation: Optional[str] = None, **details):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            details={"operation": operation, **details} if operation else details,
            status_code=500,
        )

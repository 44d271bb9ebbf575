"""
Gateway-specific exceptions
"""
from core.exceptions import ExternalAPIError


class DocumentQueryError(ExternalAPIError):
    """Document store rejected a structured or aggregation query"""

    def __init__(self, operation: str, status_code: int, response_body: str = None):
        self.operation = operation
        super().__init__(
            provider="firestore",
            message=f"{operation} failed",
            status_code=status_code,
            response_body=response_body,
            operation=operation,
        )


class InvalidResponseError(ExternalAPIError):
    """Invalid or unexpected response from API provider"""

    def __init__(self, provider: str, expected_format: str, received_data: str = None):
        super().__init__(
            provider=provider,
            message=f"Invalid response format, expected {expected_format}",
            response_body=received_data,
        )

from typing import Dict, List, Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


class PlatformServiceError(BaseServiceError):
    """Base exception for marketplace platform errors."""
    pass


class MarketplaceAPIError(PlatformServiceError):
    """Raised when a marketplace cannot be reached or fails on its side (network, timeout, 5xx)."""
    pass


class BusinessError(BaseServiceError):
    """
    Business rule violation.

    Carries a message that is safe to show to the user. The API layer returns it
    as a 4xx response instead of a stack trace.
    """
    status_code = 400

    def __init__(self, user_message: str, message: Optional[str] = None, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message or user_message)
        self.user_message = user_message
        self.errors = errors


class TokenRequiredError(BusinessError):
    """Raised when marketplace credentials are missing or rejected."""

    def __init__(self, user_message: str = "Marketplace API token is missing or invalid. Please re-enter it in the integration settings.", message: Optional[str] = None):
        super().__init__(user_message, message)


class ResponseError(BusinessError):
    """Raised when a marketplace rejects a request (4xx or an error payload)."""
    pass


class ConflictError(BusinessError):
    """Raised when a record collides with an existing unique key."""
    status_code = 409


class ApiError(BusinessError):
    """Raised for objects the caller may not access."""
    status_code = 403

    def __init__(self, user_message: str = "Forbidden", status_code: Optional[int] = None):
        super().__init__(user_message)
        if status_code is not None:
            self.status_code = status_code
